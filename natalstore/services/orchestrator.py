# ============================================================
# Module : natalstore/services/orchestrator.py
# Objet  : Machine à états d'une requête de thème natal.
#   CheckTier1 -> CheckEntityStore -> FetchFromProvider -> Normalize
#   -> Verify -> PopulateCache -> Respond
# Invariants :
#  - Un succès Tier-1 dont la racine a disparu => NotFoundError, jamais de vue périmée.
#  - La configuration fournisseur n'est résolue qu'en cas d'appel au fournisseur.
#  - Aucun verrou tenu pendant un appel réseau.
# ============================================================
"""Orchestrateur des requêtes: recherche deux niveaux, ingestion, reconstruction."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from datetime import UTC, datetime
from typing import Any

import structlog
from opentelemetry import trace

from natalstore.domain.astro_format import format_degree, house_number, house_ordinal
from natalstore.domain.entities import BirthParams, ResolveResult
from natalstore.domain.errors import NotConfiguredError, NotFoundError, TransactionError
from natalstore.domain.fingerprint import birth_fingerprint
from natalstore.domain.periods import find_active_period
from natalstore.domain.sections import filter_sections
from natalstore.infra.entity_store import EntityStore
from natalstore.infra.provider_client import ProviderClient
from natalstore.infra.tenant_config import TenantConfigResolver
from natalstore.services.lookup_chain import LookupChain, Tier1CacheTier
from natalstore.services.normalizer import Normalizer
from natalstore.services.reconstructor import Reconstructor

log = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_PERIOD_SYSTEM = "vimsottari"


class RequestOrchestrator:
    """Point d'entrée du cœur: toutes les dépendances sont injectées à la construction."""

    def __init__(
        self,
        chain: LookupChain,
        cache_tier: Tier1CacheTier,
        store: EntityStore,
        normalizer: Normalizer,
        reconstructor: Reconstructor,
        config_resolver: TenantConfigResolver,
        provider: ProviderClient,
    ) -> None:
        self.chain = chain
        self.cache_tier = cache_tier
        self.store = store
        self.normalizer = normalizer
        self.reconstructor = reconstructor
        self.config_resolver = config_resolver
        self.provider = provider
        self._pending: set[asyncio.Task] = set()

    # -- tâches de fond --------------------------------------------------

    def _schedule(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.warning("background_task_failed", task=task.get_name(), error=str(task.exception()))

    async def drain(self) -> None:
        """Attend la fin des peuplements de cache en cours."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -- résolution --------------------------------------------------------

    async def resolve(
        self,
        tenant_id: str,
        birth: BirthParams,
        sections: list[str] | None = None,
    ) -> ResolveResult:
        """Retourne la vue composite pour `birth`, en l'ingérant au besoin."""
        fingerprint = birth_fingerprint(birth)
        blog = log.bind(tenant=tenant_id, fingerprint=fingerprint)
        with tracer.start_as_current_span("natal.resolve") as span:
            span.set_attribute("natal.tenant", tenant_id)
            span.set_attribute("natal.fingerprint", fingerprint)

            with tracer.start_as_current_span("natal.lookup"):
                hit = await self.chain.lookup(tenant_id, fingerprint)
            if hit is not None:
                span.set_attribute("natal.source", hit.tier)
                composite = await self._reconstruct_hit(tenant_id, fingerprint, hit.root_id)
                if hit.misses:
                    self._schedule(
                        self.chain.populate(tenant_id, fingerprint, hit.root_id, hit.misses),
                        name="populate_cache",
                    )
                blog.info("resolve_hit", tier=hit.tier, root_id=hit.root_id)
                return ResolveResult(
                    data=filter_sections(composite, sections),
                    cached=True,
                    fingerprint=fingerprint,
                    root_id=hit.root_id,
                )

            span.set_attribute("natal.source", "provider")
            config = await self.config_resolver.resolve(tenant_id)
            if config is None:
                blog.warning("provider_not_configured")
                raise NotConfiguredError(
                    "Calculation provider credentials are not configured for this workspace"
                )
            with tracer.start_as_current_span("natal.fetch_from_provider"):
                raw = await self.provider.fetch(birth, config)
            with tracer.start_as_current_span("natal.normalize"):
                root = await self.normalizer.ingest(tenant_id, fingerprint, birth, raw)
            with tracer.start_as_current_span("natal.verify"):
                composite = await self.reconstructor.reconstruct(tenant_id, root.id)
            if composite is None:
                raise TransactionError("Ingested horoscope could not be read back")
            self._schedule(
                self.chain.populate(tenant_id, fingerprint, root.id), name="populate_cache"
            )
            blog.info("resolve_ingested", root_id=root.id)
            return ResolveResult(
                data=filter_sections(composite, sections),
                cached=False,
                fingerprint=fingerprint,
                root_id=root.id,
            )

    async def _reconstruct_hit(
        self, tenant_id: str, fingerprint: str, root_id: str
    ) -> dict[str, Any]:
        composite = await self.reconstructor.reconstruct(tenant_id, root_id)
        if composite is None:
            log.warning(
                "stale_lookup_entry", tenant=tenant_id, fingerprint=fingerprint, root_id=root_id
            )
            await self.cache_tier.invalidate(tenant_id, fingerprint)
            raise NotFoundError("Horoscope not found")
        return composite

    async def _root_id(self, tenant_id: str, fingerprint: str) -> str:
        hit = await self.chain.lookup(tenant_id, fingerprint)
        if hit is None:
            raise NotFoundError("Horoscope not found")
        if hit.misses:
            self._schedule(
                self.chain.populate(tenant_id, fingerprint, hit.root_id, hit.misses),
                name="populate_cache",
            )
        return hit.root_id

    # -- lectures ----------------------------------------------------------

    async def get_by_fingerprint(
        self, tenant_id: str, fingerprint: str, sections: list[str] | None = None
    ) -> dict[str, Any]:
        with tracer.start_as_current_span("natal.get_by_fingerprint"):
            root_id = await self._root_id(tenant_id, fingerprint)
            composite = await self._reconstruct_hit(tenant_id, fingerprint, root_id)
        return filter_sections(composite, sections)

    async def get_chart(self, tenant_id: str, fingerprint: str, division: str) -> dict[str, Any]:
        """Carte d'une division, planètes formatées et maisons dérivées de l'ascendant."""
        root_id = await self._root_id(tenant_id, fingerprint)
        chart = await self.store.get_chart(tenant_id, root_id, division)
        if chart is None:
            raise NotFoundError(f"Division chart {division} not found")
        ascendant = chart["ascendant"] or {}
        lagna = ascendant.get("sign")
        planets = []
        for p in chart["placements"]:
            house = p.get("house")
            if house is None:
                house = house_number(p.get("sign"), lagna)
            planets.append(
                {
                    "planet": p["name"],
                    "sign": p.get("sign"),
                    "longitude": p.get("longitude"),
                    "degree": format_degree(p.get("longitude")),
                    "house": house,
                    "house_label": house_ordinal(house),
                }
            )
        return {
            "division": chart["division"],
            "source_key": chart["source_key"],
            "ascendant": chart["ascendant"],
            "planets": planets,
        }

    async def get_active_period(
        self,
        tenant_id: str,
        fingerprint: str,
        system: str = DEFAULT_PERIOD_SYSTEM,
        as_of: datetime | None = None,
    ) -> dict[str, Any]:
        """Période active du système `system` à `as_of` (maintenant par défaut)."""
        root_id = await self._root_id(tenant_id, fingerprint)
        period_system = await self.store.get_period_system(tenant_id, root_id, system)
        if period_system is None:
            raise NotFoundError(f"Period system {system} not found")
        when = as_of or datetime.now(UTC)
        active = find_active_period(period_system["periods"], when)
        if active is None:
            raise NotFoundError(f"No active {system} period at the requested date")
        return {"system": system, **active}
