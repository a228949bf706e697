"""Façade asynchrone du magasin d'entités (SQLAlchemy synchrone sous le capot).

Chaque opération ouvre sa propre session dans un thread de travail: des lectures lancées en
parallèle (`asyncio.gather`) ne partagent ni session ni état mutable.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy.engine import Engine

from natalstore.domain.entities import RootRecord
from natalstore.infra.repo.db import session_scope, write_engine
from natalstore.infra.repo.natal_repo import NatalRepo

T = TypeVar("T")


class EntityStore:
    """Point d'accès unique au stockage normalisé."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._write_engine = write_engine(engine)

    def _run_sync(self, fn: Callable[[NatalRepo], T], write: bool) -> T:
        with session_scope(self._write_engine if write else self.engine) as session:
            return fn(NatalRepo(session))

    async def run(self, fn: Callable[[NatalRepo], T], write: bool = False) -> T:
        """Exécute `fn(repo)` dans une transaction dédiée, hors de la boucle d'événements.

        `write=True` prend le verrou d'écriture dès l'ouverture de la transaction (SQLite).
        """
        return await asyncio.to_thread(self._run_sync, fn, write)

    async def find_root(self, tenant_id: str, fingerprint: str) -> RootRecord | None:
        return await self.run(lambda repo: repo.find_root(tenant_id, fingerprint))

    async def get_root(self, tenant_id: str, root_id: str) -> RootRecord | None:
        return await self.run(lambda repo: repo.get_root(tenant_id, root_id))

    async def get_chart(
        self, tenant_id: str, root_id: str, division: str
    ) -> dict[str, Any] | None:
        return await self.run(lambda repo: repo.get_chart(tenant_id, root_id, division))

    async def get_period_system(
        self, tenant_id: str, root_id: str, system: str
    ) -> dict[str, Any] | None:
        return await self.run(lambda repo: repo.get_period_system(tenant_id, root_id, system))
