"""Tenancy utilities.

Derives the workspace/tenant label from authenticated token claims. Unlike a best-effort label
helper there is no default tenant: an unscoped request never reaches the core.
"""

from __future__ import annotations

import re
from typing import Any

_SAFE_TENANT_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
TENANT_CLAIMS = ("workspace_id", "workspaceId", "tenant")


def normalize_tenant(value: Any) -> str | None:
    """Return the trimmed tenant if it matches the safe pattern, else None.

    Case is preserved: two tenants differing only by case stay distinct.
    """
    if not isinstance(value, str):
        return None
    t = value.strip()
    if _SAFE_TENANT_RE.match(t):
        return t
    return None


def tenant_from_claims(claims: dict[str, Any] | None) -> str | None:
    """Return the first valid tenant claim in preference order, or None."""
    if not claims:
        return None
    for name in TENANT_CLAIMS:
        tenant = normalize_tenant(claims.get(name))
        if tenant:
            return tenant
    return None
