# ============================================================
# Module : natalstore/infra/repo/natal_repo.py
# Objet  : Accès SQL (CRUD) pour la racine et les collections dépendantes.
# Invariants :
#  - Toute requête porte un prédicat tenant_id.
#  - Les collections dépendantes sont lues dans l'ordre d'insertion (id).
# ============================================================
"""Dépôt SQLAlchemy du thème normalisé, lié à une session."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from natalstore.domain.entities import BirthParams, RootRecord
from natalstore.infra.repo.models import (
    AstrologicalPointORM,
    CelestialBodyORM,
    DivisionChartORM,
    NamedConditionORM,
    NatalRootORM,
    PeriodSystemORM,
    StrengthTableORM,
)


def _root_record(row: NatalRootORM) -> RootRecord:
    birth = {
        "date": row.birth_date,
        "time": row.birth_time,
        "latitude": row.latitude,
        "longitude": row.longitude,
        "timezone": row.timezone,
    }
    if row.location is not None:
        birth["location"] = row.location
    return RootRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        fingerprint=row.fingerprint,
        birth_details=birth,
        metadata=dict(row.meta or {}),
    )


class NatalRepo:
    """CRUD minimal pour les thèmes normalisés."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    # -- écriture -------------------------------------------------------

    def create_root(
        self,
        tenant_id: str,
        fingerprint: str,
        birth: BirthParams,
        metadata: dict[str, Any],
    ) -> RootRecord:
        """Insère la racine et flush immédiatement.

        Lève IntegrityError sur doublon (tenant_id, fingerprint); la transaction englobante
        décide du rollback.
        """
        row = NatalRootORM(
            tenant_id=tenant_id,
            fingerprint=fingerprint,
            birth_date=birth.date,
            birth_time=birth.time,
            latitude=birth.latitude,
            longitude=birth.longitude,
            timezone=birth.timezone,
            location=birth.location,
            meta=metadata,
        )
        self._session.add(row)
        self._session.flush()
        return _root_record(row)

    def add_rows(self, rows: list[Any]) -> None:
        """Ajoute des lignes dépendantes déjà construites et flush."""
        if rows:
            self._session.add_all(rows)
            self._session.flush()

    # -- lecture --------------------------------------------------------

    def find_root(self, tenant_id: str, fingerprint: str) -> RootRecord | None:
        """Racine par (tenant, fingerprint), ou None."""
        stmt = select(NatalRootORM).where(
            NatalRootORM.tenant_id == tenant_id,
            NatalRootORM.fingerprint == fingerprint,
        )
        row = self._session.execute(stmt).scalars().first()
        return _root_record(row) if row else None

    def get_root(self, tenant_id: str, root_id: str) -> RootRecord | None:
        """Racine par (tenant, id), ou None."""
        stmt = select(NatalRootORM).where(
            NatalRootORM.tenant_id == tenant_id,
            NatalRootORM.id == root_id,
        )
        row = self._session.execute(stmt).scalars().first()
        return _root_record(row) if row else None

    def _scoped(self, model, tenant_id: str, root_id: str, *criteria):
        stmt = (
            select(model)
            .where(model.tenant_id == tenant_id, model.root_id == root_id, *criteria)
            .order_by(model.id)
        )
        return self._session.execute(stmt).scalars().all()

    def list_bodies(self, tenant_id: str, root_id: str) -> list[dict[str, Any]]:
        return [
            {
                "name": r.name,
                "longitude": r.longitude,
                "sign": r.sign,
                "house": r.house,
                "nakshatra": r.nakshatra,
                "pada": r.pada,
                "is_retrograde": r.is_retrograde,
                "is_combust": r.is_combust,
                "speed": r.speed,
                "is_exalted": r.is_exalted,
                "is_debilitated": r.is_debilitated,
                "is_own_sign": r.is_own_sign,
            }
            for r in self._scoped(CelestialBodyORM, tenant_id, root_id)
        ]

    @staticmethod
    def _chart(r: DivisionChartORM) -> dict[str, Any]:
        return {
            "division": r.division,
            "source_key": r.source_key,
            "ascendant": r.ascendant,
            "placements": list(r.placements or []),
        }

    def list_charts(self, tenant_id: str, root_id: str) -> list[dict[str, Any]]:
        return [self._chart(r) for r in self._scoped(DivisionChartORM, tenant_id, root_id)]

    def get_chart(self, tenant_id: str, root_id: str, division: str) -> dict[str, Any] | None:
        """Carte d'une division (`D-9`), ou None."""
        rows = self._scoped(
            DivisionChartORM, tenant_id, root_id, DivisionChartORM.division == division
        )
        return self._chart(rows[0]) if rows else None

    def list_period_systems(self, tenant_id: str, root_id: str) -> list[dict[str, Any]]:
        return [
            {"system": r.system, "periods": list(r.periods or [])}
            for r in self._scoped(PeriodSystemORM, tenant_id, root_id)
        ]

    def get_period_system(
        self, tenant_id: str, root_id: str, system: str
    ) -> dict[str, Any] | None:
        """Système de périodes nommé, ou None."""
        rows = self._scoped(
            PeriodSystemORM, tenant_id, root_id, PeriodSystemORM.system == system
        )
        if not rows:
            return None
        return {"system": rows[0].system, "periods": list(rows[0].periods or [])}

    def list_conditions(self, tenant_id: str, root_id: str) -> list[dict[str, Any]]:
        return [
            {
                "kind": r.kind,
                "name": r.name,
                "description": r.description,
                "is_present": r.is_present,
                "source_key": r.source_key,
                "division": r.division,
                "condition": r.condition,
            }
            for r in self._scoped(NamedConditionORM, tenant_id, root_id)
        ]

    def list_strengths(self, tenant_id: str, root_id: str) -> list[dict[str, Any]]:
        return [
            {"category": r.category, "payload": r.payload}
            for r in self._scoped(StrengthTableORM, tenant_id, root_id)
        ]

    def list_points(self, tenant_id: str, root_id: str) -> list[dict[str, Any]]:
        return [
            {
                "category": r.category,
                "name": r.name,
                "longitude": r.longitude,
                "sign": r.sign,
                "house": r.house,
                "associated_body": r.associated_body,
                "raw_text": r.raw_text,
            }
            for r in self._scoped(AstrologicalPointORM, tenant_id, root_id)
        ]
