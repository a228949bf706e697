"""Résolution de la configuration fournisseur par tenant.

Ordre: table `provider_configs` (ligne active) → `PROVIDER_CONFIGS_JSON` → non configuré.
Ne journalise jamais la clé d'API.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.engine import Engine

from natalstore.domain.entities import ProviderConfig
from natalstore.infra.repo.db import session_scope
from natalstore.infra.repo.models import ProviderConfigORM

log = structlog.get_logger(__name__)


def parse_configs_json(raw: str | None) -> dict[str, ProviderConfig]:
    """Parse `{"tenant": {"api_url": ..., "api_key": ...}}`; ignore les entrées invalides."""
    if not raw:
        return {}
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError:
        log.error("provider_configs_json_invalid")
        return {}
    if not isinstance(data, dict):
        log.error("provider_configs_json_not_object")
        return {}
    configs: dict[str, ProviderConfig] = {}
    for tenant, value in data.items():
        try:
            configs[str(tenant)] = ProviderConfig.model_validate(value)
        except ValidationError:
            log.warning("provider_config_entry_invalid", tenant=tenant)
    return configs


class TenantConfigResolver:
    """Résout `tenant_id` -> `ProviderConfig` ou None."""

    def __init__(self, engine: Engine | None = None, configs_json: str | None = None) -> None:
        self.engine = engine
        self._static = parse_configs_json(configs_json)

    def _from_db(self, tenant_id: str) -> ProviderConfig | None:
        if self.engine is None:
            return None
        with session_scope(self.engine) as session:
            stmt = select(ProviderConfigORM).where(
                ProviderConfigORM.tenant_id == tenant_id,
                ProviderConfigORM.enabled.is_(True),
            )
            row = session.execute(stmt).scalars().first()
            if not row or not row.api_url:
                return None
            try:
                return ProviderConfig(api_url=row.api_url, api_key=row.api_key)
            except ValidationError:
                log.warning("provider_config_row_invalid", tenant=tenant_id)
                return None

    def save(self, tenant_id: str, api_url: str, api_key: str | None = None) -> None:
        """Crée ou met à jour la configuration d'un tenant.

        Lève pydantic.ValidationError si `api_url` n'est pas une URL http(s).
        """
        if self.engine is None:
            raise RuntimeError("TenantConfigResolver has no database engine")
        config = ProviderConfig(api_url=api_url, api_key=api_key)
        with session_scope(self.engine) as session:
            row = session.execute(
                select(ProviderConfigORM).where(ProviderConfigORM.tenant_id == tenant_id)
            ).scalars().first()
            if row is None:
                row = ProviderConfigORM(tenant_id=tenant_id, api_url=config.api_url)
                session.add(row)
            row.api_url = config.api_url
            row.api_key = config.api_key
            row.enabled = True

    async def resolve(self, tenant_id: str) -> ProviderConfig | None:
        config = await asyncio.to_thread(self._from_db, tenant_id)
        if config is None:
            config = self._static.get(tenant_id)
        return config
