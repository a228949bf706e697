"""SQLAlchemy models for the normalized natal-chart layout.

One root table plus six dependent tables. Every row carries `tenant_id`; dependents also carry
`root_id`. Uniqueness is always scoped by tenant.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Classe de base pour tous les modèles SQLAlchemy."""

    metadata = MetaData()


def _new_root_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class NatalRootORM(Base):
    """Racine: identité (tenant, fingerprint) + paramètres de naissance + métadonnées."""

    __tablename__ = "natal_roots"

    id = Column(String(32), primary_key=True, default=_new_root_id)
    tenant_id = Column(String(64), nullable=False, index=True)
    fingerprint = Column(String(64), nullable=False)
    birth_date = Column(String(32), nullable=False)
    birth_time = Column(String(32), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    timezone = Column(String(64), nullable=True)
    location = Column(String(255), nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "fingerprint", name="uq_root_tenant_fingerprint"),
    )


class _RootScoped:
    """Colonnes communes aux collections dépendantes."""

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False)


def _root_fk() -> Column:
    return Column(
        String(32),
        ForeignKey("natal_roots.id", ondelete="CASCADE"),
        nullable=False,
    )


class CelestialBodyORM(_RootScoped, Base):
    """Corps céleste du thème principal (D-1)."""

    __tablename__ = "celestial_bodies"

    root_id = _root_fk()
    name = Column(String(32), nullable=False)
    longitude = Column(Float, nullable=True)
    sign = Column(String(32), nullable=True)
    house = Column(Integer, nullable=True)
    nakshatra = Column(String(64), nullable=True)
    pada = Column(Integer, nullable=True)
    is_retrograde = Column(Boolean, nullable=False, default=False)
    is_combust = Column(Boolean, nullable=False, default=False)
    speed = Column(Float, nullable=True)
    is_exalted = Column(Boolean, nullable=False, default=False)
    is_debilitated = Column(Boolean, nullable=False, default=False)
    is_own_sign = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "root_id", "name", name="uq_body_tenant_root_name"),
    )


class DivisionChartORM(_RootScoped, Base):
    """Carte divisionnaire: ascendant + placements ordonnés."""

    __tablename__ = "division_charts"

    root_id = _root_fk()
    division = Column(String(16), nullable=False)
    source_key = Column(String(64), nullable=False)
    ascendant = Column(JSON, nullable=True)
    placements = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "root_id", "division", name="uq_chart_tenant_root_division"
        ),
    )


class PeriodSystemORM(_RootScoped, Base):
    """Système de périodes nommé (vimsottari, ...) trié par début."""

    __tablename__ = "period_systems"

    root_id = _root_fk()
    system = Column(String(64), nullable=False)
    periods = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("tenant_id", "root_id", "system", name="uq_period_tenant_root_system"),
    )


class NamedConditionORM(_RootScoped, Base):
    """Yoga ou dosha; les doublons de nom sont permis."""

    __tablename__ = "named_conditions"

    root_id = _root_fk()
    kind = Column(String(16), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_present = Column(Boolean, nullable=False, default=True)
    source_key = Column(String(255), nullable=True)
    division = Column(String(16), nullable=True)
    condition = Column(Text, nullable=True)

    __table_args__ = (Index("ix_condition_scope", "tenant_id", "root_id", "kind"),)


class StrengthTableORM(_RootScoped, Base):
    """Table de force (ShadBala, BhavaBala, ...) au contenu opaque."""

    __tablename__ = "strength_tables"

    root_id = _root_fk()
    category = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=True)

    __table_args__ = (Index("ix_strength_scope", "tenant_id", "root_id", "category"),)


class AstrologicalPointORM(_RootScoped, Base):
    """Point polymorphe (Saham, Upagraha, SpecialLagna, Arudha, CharaKaraka)."""

    __tablename__ = "astrological_points"

    root_id = _root_fk()
    category = Column(String(32), nullable=False)
    name = Column(String(128), nullable=False)
    longitude = Column(Float, nullable=True)
    sign = Column(String(32), nullable=True)
    house = Column(Integer, nullable=True)
    associated_body = Column(String(32), nullable=True)
    raw_text = Column(Text, nullable=True)

    __table_args__ = (Index("ix_point_scope", "tenant_id", "root_id", "category", "name"),)


class ProviderConfigORM(Base):
    """Configuration fournisseur par tenant (URL + clé)."""

    __tablename__ = "provider_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, unique=True)
    api_url = Column(String(512), nullable=False)
    api_key = Column(String(512), nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
