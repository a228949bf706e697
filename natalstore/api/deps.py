"""Dépendances partagées pour les routes de l'API.

- `get_container`: conteneur attaché à l'application (`app.state.container`).
- `get_identity`: appelant authentifié (JWT Bearer) et son workspace; aucune requête non
  rattachée à un tenant n'atteint le cœur.
"""

from __future__ import annotations

from typing import Any

import jwt
from fastapi import Depends, Header, Request
from jwt import InvalidTokenError

from natalstore.core.container import Container
from natalstore.domain.entities import Identity
from natalstore.domain.errors import AuthenticationError, TenantRequiredError
from natalstore.domain.tenancy import tenant_from_claims


def get_container(request: Request) -> Container:
    return request.app.state.container


def decode_token(token: str, secret: str, alg: str) -> dict[str, Any] | None:
    """Décode et valide un token JWT; None si invalide ou expiré."""
    try:
        return jwt.decode(token, secret, algorithms=[alg])
    except InvalidTokenError:
        return None


def get_identity(
    authorization: str | None = Header(None),
    container: Container = Depends(get_container),
) -> Identity:
    """Extrait l'appelant et son tenant à partir du token d'autorisation."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    claims = decode_token(token, container.settings.JWT_SECRET, container.settings.JWT_ALG)
    if claims is None:
        raise AuthenticationError("Invalid or expired token")
    tenant = tenant_from_claims(claims)
    if not tenant:
        raise TenantRequiredError("Token is not scoped to a workspace")
    return Identity(tenant_id=tenant, caller=str(claims.get("sub") or "anonymous"))
