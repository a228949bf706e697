"""
Conteneur d'injection de dépendances et configuration application.

Instancie les composants centraux (moteur SQL, cache Tier-1, magasin d'entités, normaliseur,
reconstructeur, client fournisseur, orchestrateur) et les relie explicitement. Les services ne
consultent aucun état global: tout est passé à la construction.
"""

from __future__ import annotations

from functools import lru_cache

import structlog
from redis.exceptions import RedisError
from sqlalchemy.engine import Engine

from natalstore.core.settings import Settings, get_settings
from natalstore.infra.cache import InMemoryRootIdCache, RedisRootIdCache
from natalstore.infra.entity_store import EntityStore
from natalstore.infra.provider_client import ProviderClient
from natalstore.infra.repo.db import create_schema, get_engine
from natalstore.infra.tenant_config import TenantConfigResolver
from natalstore.services.lookup_chain import EntityStoreTier, LookupChain, Tier1CacheTier
from natalstore.services.normalizer import Normalizer
from natalstore.services.orchestrator import RequestOrchestrator
from natalstore.services.reconstructor import Reconstructor

log = structlog.get_logger(__name__)


class Container:
    def __init__(
        self,
        settings: Settings | None = None,
        engine: Engine | None = None,
        cache: InMemoryRootIdCache | RedisRootIdCache | None = None,
        provider: ProviderClient | None = None,
    ):
        self.settings = settings or get_settings()
        self.engine = engine or get_engine(self.settings.DATABASE_URL)
        create_schema(self.engine)

        if cache is not None:
            self.cache = cache
            self.cache_backend = type(cache).__name__
        else:
            self.cache, self.cache_backend = self._build_cache()

        self.store = EntityStore(self.engine)
        self.normalizer = Normalizer(
            self.store,
            provider_name=self.settings.PROVIDER_NAME,
            allowed_tenants=self.settings.ALLOWED_TENANTS,
        )
        self.reconstructor = Reconstructor(self.store)
        self.config_resolver = TenantConfigResolver(
            engine=self.engine, configs_json=self.settings.PROVIDER_CONFIGS_JSON
        )
        self.provider = provider or ProviderClient(
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS
        )
        self.cache_tier = Tier1CacheTier(self.cache, ttl_seconds=self.settings.CACHE_TTL_SECONDS)
        self.chain = LookupChain(
            [self.cache_tier, EntityStoreTier(self.store)],
            allowed_tenants=self.settings.ALLOWED_TENANTS,
        )
        self.orchestrator = RequestOrchestrator(
            chain=self.chain,
            cache_tier=self.cache_tier,
            store=self.store,
            normalizer=self.normalizer,
            reconstructor=self.reconstructor,
            config_resolver=self.config_resolver,
            provider=self.provider,
        )

    def _build_cache(self) -> tuple[InMemoryRootIdCache | RedisRootIdCache, str]:
        ttl = self.settings.CACHE_TTL_SECONDS
        require = self.settings.REQUIRE_REDIS
        if self.settings.REDIS_URL:
            try:
                cache = RedisRootIdCache(self.settings.REDIS_URL, ttl_seconds=ttl)
                cache.client.ping()
                return cache, "redis"
            except RedisError as err:
                if require:
                    raise RuntimeError("Redis required but unavailable") from err
                log.warning("redis_unavailable_memory_fallback", error=str(err))
                return InMemoryRootIdCache(ttl_seconds=ttl), "memory-fallback"
        if require:
            raise RuntimeError("Redis required but REDIS_URL not set")
        return InMemoryRootIdCache(ttl_seconds=ttl), "memory"


@lru_cache
def get_container() -> Container:
    """Conteneur applicatif construit une seule fois depuis l'environnement."""
    return Container()
