"""
Cache de niveau 1: (tenant, fingerprint) -> identifiant de racine.

Le cache est une optimisation, jamais une dépendance de correction: toute indisponibilité du
backend se dégrade en « absent » (lecture) ou en no-op (écriture). Écritures concurrentes sur une
même clé: le dernier gagne, toutes écrivent la même valeur.
"""

from __future__ import annotations

import time

import redis
import structlog
from redis.exceptions import RedisError

from natalstore.app.metrics import NATAL_CACHE_ERRORS

log = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 604800


def cache_key(tenant_id: str, fingerprint: str) -> str:
    """Clé Redis portée par le tenant: `natal:ws:{tenant}:fp:{fingerprint}`."""
    return f"natal:ws:{tenant_id}:fp:{fingerprint}"


class InMemoryRootIdCache:
    """
    Cache en mémoire avec TTL (utilisé pour dev/tests).

    Stocke les entrées dans un dict local, non partagé entre processus.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds
        self._vals: dict[str, str] = {}
        self._exp: dict[str, float] = {}

    def get(self, tenant_id: str, fingerprint: str) -> str | None:
        key = cache_key(tenant_id, fingerprint)
        exp = self._exp.get(key)
        if exp is not None and exp <= time.time():
            self._exp.pop(key, None)
            self._vals.pop(key, None)
        return self._vals.get(key)

    def set(
        self, tenant_id: str, fingerprint: str, root_id: str, ttl: int | None = None
    ) -> None:
        key = cache_key(tenant_id, fingerprint)
        self._vals[key] = root_id
        self._exp[key] = time.time() + int(ttl or self.ttl_seconds)

    def invalidate(self, tenant_id: str, fingerprint: str) -> None:
        key = cache_key(tenant_id, fingerprint)
        self._vals.pop(key, None)
        self._exp.pop(key, None)


class RedisRootIdCache:
    """Cache adossé à Redis (clé: `natal:ws:{tenant}:fp:{fingerprint}`)."""

    def __init__(
        self,
        url: str | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        client: redis.Redis | None = None,
    ) -> None:
        """Crée un client Redis à partir de l'URL fournie (ou utilise `client`)."""
        self.ttl_seconds = ttl_seconds
        self.client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=0.5,
            socket_timeout=0.5,
        )

    def get(self, tenant_id: str, fingerprint: str) -> str | None:
        """Retourne l'identifiant de racine, ou None (y compris si Redis est indisponible)."""
        try:
            raw = self.client.get(cache_key(tenant_id, fingerprint))
        except RedisError as e:
            NATAL_CACHE_ERRORS.labels(op="get").inc()
            log.warning("tier1_cache_unavailable", op="get", error=str(e))
            return None
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    def set(
        self, tenant_id: str, fingerprint: str, root_id: str, ttl: int | None = None
    ) -> None:
        """Stocke l'association avec TTL; silencieux si Redis est indisponible."""
        try:
            self.client.set(
                cache_key(tenant_id, fingerprint), root_id, ex=int(ttl or self.ttl_seconds)
            )
        except RedisError as e:
            NATAL_CACHE_ERRORS.labels(op="set").inc()
            log.warning("tier1_cache_unavailable", op="set", error=str(e))

    def invalidate(self, tenant_id: str, fingerprint: str) -> None:
        try:
            self.client.delete(cache_key(tenant_id, fingerprint))
        except RedisError as e:
            NATAL_CACHE_ERRORS.labels(op="delete").inc()
            log.warning("tier1_cache_unavailable", op="delete", error=str(e))
