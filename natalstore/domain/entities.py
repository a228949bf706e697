"""
Entités du domaine métier.

Ce module définit les modèles de données échangés entre l'API, l'orchestrateur et les dépôts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

PROVIDER_URL_SCHEMES = ("http", "https")


class BirthParams(BaseModel):
    """Paramètres de naissance bruts, déjà normalisés en amont.

    Date et heure non vides, latitude dans [-90, 90], longitude dans [-180, 180].
    """

    date: str = Field(..., min_length=1, description="ISO date YYYY-MM-DD")
    time: str = Field(..., min_length=1, description="HH:MM")
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timezone: str | None = Field(None, description="IANA TZ ou décalage, e.g. +05:30")
    location: str | None = None


class ProviderConfig(BaseModel):
    """Point d'accès et identifiants du fournisseur de calcul pour un tenant."""

    api_url: str
    api_key: str | None = None

    @field_validator("api_url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme.lower() not in PROVIDER_URL_SCHEMES or not parts.netloc:
            raise ValueError("api_url must be an http(s) URL")
        return value


class Identity(BaseModel):
    """Appelant authentifié et son workspace."""

    tenant_id: str
    caller: str


@dataclass(frozen=True)
class RootRecord:
    """Racine persistée (ancre d'identité tenant + fingerprint)."""

    id: str
    tenant_id: str
    fingerprint: str
    birth_details: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ResolveResult:
    """Résultat de l'orchestrateur: vue composite + provenance."""

    data: dict[str, Any]
    cached: bool
    fingerprint: str
    root_id: str
