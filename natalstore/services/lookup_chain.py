"""Chaîne de recherche à deux niveaux: cache Tier-1 puis magasin d'entités.

Chaque niveau expose `lookup` / `populate`. La chaîne s'arrête au premier succès et
repeuple les niveaux précédents.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import structlog

from natalstore.app.metrics import NATAL_LOOKUPS, labelize_tenant
from natalstore.infra.entity_store import EntityStore

log = structlog.get_logger(__name__)


class RootIdCache(Protocol):
    def get(self, tenant_id: str, fingerprint: str) -> str | None: ...

    def set(
        self, tenant_id: str, fingerprint: str, root_id: str, ttl: int | None = None
    ) -> None: ...

    def invalidate(self, tenant_id: str, fingerprint: str) -> None: ...


class LookupTier(Protocol):
    name: str

    async def lookup(self, tenant_id: str, fingerprint: str) -> str | None: ...

    async def populate(self, tenant_id: str, fingerprint: str, root_id: str) -> None: ...


class Tier1CacheTier:
    """Niveau cache: fingerprint -> root_id; toute erreur backend vaut absence."""

    name = "tier1"

    def __init__(self, cache: RootIdCache, ttl_seconds: int | None = None) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def lookup(self, tenant_id: str, fingerprint: str) -> str | None:
        return await asyncio.to_thread(self.cache.get, tenant_id, fingerprint)

    async def populate(self, tenant_id: str, fingerprint: str, root_id: str) -> None:
        await asyncio.to_thread(
            self.cache.set, tenant_id, fingerprint, root_id, self.ttl_seconds
        )

    async def invalidate(self, tenant_id: str, fingerprint: str) -> None:
        await asyncio.to_thread(self.cache.invalidate, tenant_id, fingerprint)


class EntityStoreTier:
    """Niveau persistant: recherche de la racine par (tenant, fingerprint)."""

    name = "entity_store"

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def lookup(self, tenant_id: str, fingerprint: str) -> str | None:
        root = await self.store.find_root(tenant_id, fingerprint)
        return root.id if root else None

    async def populate(self, tenant_id: str, fingerprint: str, root_id: str) -> None:
        # Seule l'ingestion écrit dans le magasin
        return None


@dataclass
class LookupHit:
    root_id: str
    tier: str
    # Niveaux précédents à repeupler
    misses: list[LookupTier]


class LookupChain:
    """Parcourt les niveaux dans l'ordre; le premier succès court-circuite."""

    def __init__(self, tiers: list[LookupTier], allowed_tenants: list[str] | str | None = None):
        self.tiers = tiers
        self.allowed_tenants = allowed_tenants

    async def lookup(self, tenant_id: str, fingerprint: str) -> LookupHit | None:
        label = labelize_tenant(tenant_id, self.allowed_tenants)
        missed: list[LookupTier] = []
        for tier in self.tiers:
            root_id = await tier.lookup(tenant_id, fingerprint)
            if root_id:
                NATAL_LOOKUPS.labels(tier=tier.name, result="hit", tenant=label).inc()
                log.debug("lookup_hit", tier=tier.name, tenant=tenant_id, root_id=root_id)
                return LookupHit(root_id=root_id, tier=tier.name, misses=missed)
            NATAL_LOOKUPS.labels(tier=tier.name, result="miss", tenant=label).inc()
            missed.append(tier)
        return None

    async def populate(
        self,
        tenant_id: str,
        fingerprint: str,
        root_id: str,
        tiers: list[LookupTier] | None = None,
    ) -> None:
        """Repeuple `tiers` (par défaut tous les niveaux)."""
        for tier in self.tiers if tiers is None else tiers:
            await tier.populate(tenant_id, fingerprint, root_id)
