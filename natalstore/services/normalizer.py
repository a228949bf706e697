# ============================================================
# Module : natalstore/services/normalizer.py
# Objet  : Décomposition d'un thème brut en collections normalisées.
# Invariants :
#  - Une seule transaction multi-tables: tout ou rien.
#  - Doublon (tenant, fingerprint) au commit => DuplicateFingerprintError, jamais d'écrasement.
#  - Catégories de force hors liste blanche ignorées.
# ============================================================
"""Normaliseur (ingestion) du thème brut renvoyé par le fournisseur."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from natalstore.app.metrics import NATAL_INGESTIONS, labelize_tenant
from natalstore.domain.astro_format import (
    BODY_NAMES,
    ZODIAC_SIGNS,
    normalize_body_name,
)
from natalstore.domain.entities import BirthParams, RootRecord
from natalstore.domain.errors import (
    DuplicateFingerprintError,
    MalformedProviderResponseError,
    TransactionError,
)
from natalstore.domain.periods import decompose_periods
from natalstore.infra.entity_store import EntityStore
from natalstore.infra.repo.models import (
    AstrologicalPointORM,
    CelestialBodyORM,
    DivisionChartORM,
    NamedConditionORM,
    PeriodSystemORM,
    StrengthTableORM,
)
from natalstore.infra.repo.natal_repo import NatalRepo

log = structlog.get_logger(__name__)

PRIMARY_DIVISION = "D-1"
ASCENDANT_KEY = "Ascendant"
DIVISION_DELIMITER = "_"

# Clé brute -> catégorie stockée (liste blanche explicite)
STRENGTH_CATEGORIES = {
    "shad_bala": "ShadBala",
    "bhava_bala": "BhavaBala",
    "ashtakavarga": "Ashtakavarga",
    "other_bala": "OtherBala",
    "vimsopaka_bala": "VimsopakaBala",
    "vaiseshikamsa_bala": "VaiseshikamsaBala",
}
POINT_CATEGORIES = {
    "sahams": "Saham",
    "upagrahas": "Upagraha",
    "special_lagnas": "SpecialLagna",
    "arudha_padhas": "Arudha",
    "chara_karakas": "CharaKaraka",
}
DIGNITY_LISTS = {
    "is_exalted": "exalted_planets",
    "is_debilitated": "debilitated_planets",
    "is_own_sign": "own_sign_planets",
}
# Heuristique historique: absence de « no » dans la description => dosha présent
NEGATION_KEYWORD = "no"

_NUMBER_RE = re.compile(r"[-+]?\d+(?:\.\d+)?")


class ArtifactShapeError(ValueError):
    """Section du thème brut de forme inattendue."""


def division_code(key: str) -> str:
    """`"D-9_navamsa"` -> `"D-9"`."""
    return key.split(DIVISION_DELIMITER, 1)[0]


def _mapping(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ArtifactShapeError(f"section '{key}' must be an object")
    return dict(value)


def _float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        raise ArtifactShapeError(f"invalid numeric value: {value!r}")
    return float(value)


def _str(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    raise ArtifactShapeError(f"invalid text value: {value!r}")


def _int(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _by_body(data: Mapping[str, Any]) -> dict[str, Any]:
    """Entrées indexées par nom canonique (Raagu -> Rahu); la graphie canonique prime."""
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = normalize_body_name(key)
        if key == name or name not in out:
            out[name] = value
    return out


def _names(values: Any) -> set[str]:
    if not values:
        return set()
    if not isinstance(values, list | tuple):
        raise ArtifactShapeError("planet state lists must be arrays")
    return {normalize_body_name(str(v)) for v in values}


def dosha_present(description: str | None) -> bool:
    """Présence d'un dosha déduite du texte (heuristique fragile, conservée telle quelle)."""
    return NEGATION_KEYWORD not in (description or "").lower()


def parse_point_text(text: str) -> tuple[str | None, float | None, str | None]:
    """Best-effort: `"Libra 12.5deg"` -> (sign, 12.5, None); `"Sun"` -> (None, None, "Sun")."""
    stripped = text.strip()
    body = normalize_body_name(stripped)
    if body in BODY_NAMES:
        return None, None, body
    tokens = stripped.split()
    sign = tokens[0] if tokens and tokens[0] in ZODIAC_SIGNS else None
    match = _NUMBER_RE.search(stripped)
    longitude = float(match.group()) if match else None
    return sign, longitude, None


class Normalizer:
    """Écrit la racine et toutes les entités dépendantes en une transaction.

    Paramètres:
    - store: magasin d'entités (transaction par appel).
    - provider_name: nom du fournisseur enregistré dans les métadonnées.
    - allowed_tenants: liste blanche des labels tenant des métriques.
    """

    def __init__(
        self,
        store: EntityStore,
        provider_name: str = "jhora",
        allowed_tenants: list[str] | str | None = None,
    ) -> None:
        self.store = store
        self.provider_name = provider_name
        self.allowed_tenants = allowed_tenants

    async def ingest(
        self,
        tenant_id: str,
        fingerprint: str,
        birth: BirthParams,
        raw: dict[str, Any],
    ) -> RootRecord:
        """Décompose `raw` et l'enregistre atomiquement pour (tenant, fingerprint).

        Lève DuplicateFingerprintError si la racine existe déjà (course entre deux premières
        requêtes), MalformedProviderResponseError si une section est illisible,
        TransactionError pour tout autre échec de commit.
        """
        blog = log.bind(tenant=tenant_id, fingerprint=fingerprint)
        label = labelize_tenant(tenant_id, self.allowed_tenants)
        try:
            root = await self.store.run(
                lambda repo: self._write(repo, tenant_id, fingerprint, birth, raw), write=True
            )
        except DuplicateFingerprintError:
            NATAL_INGESTIONS.labels(outcome="duplicate", tenant=label).inc()
            blog.warning("ingestion_duplicate_fingerprint")
            raise
        except ValueError as exc:
            NATAL_INGESTIONS.labels(outcome="malformed", tenant=label).inc()
            blog.error("ingestion_malformed_artifact", error=str(exc))
            raise MalformedProviderResponseError(
                f"Provider artifact could not be normalized: {exc}"
            ) from exc
        except SQLAlchemyError as exc:
            NATAL_INGESTIONS.labels(outcome="failed", tenant=label).inc()
            blog.error("ingestion_transaction_failed", error=str(exc))
            raise TransactionError("Ingestion transaction failed") from exc
        NATAL_INGESTIONS.labels(outcome="committed", tenant=label).inc()
        blog.info("ingestion_committed", root_id=root.id)
        return root

    # -- transaction ----------------------------------------------------

    def _write(
        self,
        repo: NatalRepo,
        tenant_id: str,
        fingerprint: str,
        birth: BirthParams,
        raw: dict[str, Any],
    ) -> RootRecord:
        try:
            root = repo.create_root(tenant_id, fingerprint, birth, self._metadata(raw))
        except IntegrityError as exc:
            raise DuplicateFingerprintError(
                "A horoscope with this fingerprint already exists for the tenant"
            ) from exc
        scope = {"tenant_id": tenant_id, "root_id": root.id}
        repo.add_rows(self._bodies(raw, scope))
        repo.add_rows(self._charts(raw, scope))
        repo.add_rows(self._period_systems(raw, scope))
        repo.add_rows(self._conditions(raw, scope))
        repo.add_rows(self._strengths(raw, scope))
        repo.add_rows(self._points(raw, scope))
        return root

    def _metadata(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "source_api": self.provider_name,
            "api_version": raw.get("apiVersion") or "1.0",
            "ayanamsa_value": raw.get("ayanamsa_value"),
            "julian_day": raw.get("julian_day"),
        }

    # -- décomposition par section --------------------------------------

    def _bodies(self, raw: dict[str, Any], scope: dict[str, str]) -> list[CelestialBodyORM]:
        charts = _mapping(raw, "divisional_charts")
        primary: dict[str, Any] = {}
        for key, chart in charts.items():
            if division_code(key) == PRIMARY_DIVISION and isinstance(chart, Mapping):
                primary = _by_body(chart)
                break
        nakshatras = _by_body(_mapping(raw, "nakshatra_pada"))
        states = _mapping(raw, "planetary_states")
        retro = _names(states.get("retrograde_planets"))
        combust = _names(states.get("combusted_planets"))
        dignities = {flag: _names(states.get(key)) for flag, key in DIGNITY_LISTS.items()}

        rows = []
        for name in BODY_NAMES:
            data = primary.get(name)
            if not isinstance(data, Mapping):
                continue
            nak = nakshatras.get(name) or {}
            if not isinstance(nak, Mapping):
                raise ArtifactShapeError(f"nakshatra_pada entry for {name} must be an object")
            rows.append(
                CelestialBodyORM(
                    **scope,
                    name=name,
                    longitude=_float(data.get("longitude")),
                    sign=_str(data.get("sign")),
                    house=_int(data.get("house")),
                    nakshatra=_str(nak.get("nakshatra")),
                    pada=_int(nak.get("pada")),
                    is_retrograde=name in retro,
                    is_combust=name in combust,
                    speed=_float(data.get("speed")),
                    **{flag: name in names for flag, names in dignities.items()},
                )
            )
        return rows

    def _charts(self, raw: dict[str, Any], scope: dict[str, str]) -> list[DivisionChartORM]:
        rows = []
        for key, chart in _mapping(raw, "divisional_charts").items():
            if not isinstance(chart, Mapping):
                raise ArtifactShapeError(f"divisional chart '{key}' must be an object")
            asc = chart.get(ASCENDANT_KEY)
            ascendant = None
            if isinstance(asc, Mapping):
                ascendant = {
                    "sign": _str(asc.get("sign")),
                    "longitude": _float(asc.get("longitude")),
                }
            placements = []
            for name, data in chart.items():
                if name == ASCENDANT_KEY:
                    continue
                if not isinstance(data, Mapping):
                    raise ArtifactShapeError(f"placement '{name}' in '{key}' must be an object")
                placements.append(
                    {
                        "name": name,
                        "sign": _str(data.get("sign")),
                        "longitude": _float(data.get("longitude")),
                        "house": _int(data.get("house")),
                    }
                )
            rows.append(
                DivisionChartORM(
                    **scope,
                    division=division_code(key),
                    source_key=key,
                    ascendant=ascendant,
                    placements=placements,
                )
            )
        return rows

    def _period_systems(
        self, raw: dict[str, Any], scope: dict[str, str]
    ) -> list[PeriodSystemORM]:
        rows = []
        for system, periods in _mapping(raw, "graha_dashas").items():
            if not isinstance(periods, list | tuple):
                raise ArtifactShapeError(f"period system '{system}' must be an array")
            rows.append(
                PeriodSystemORM(**scope, system=system, periods=decompose_periods(periods))
            )
        return rows

    def _conditions(
        self, raw: dict[str, Any], scope: dict[str, str]
    ) -> list[NamedConditionORM]:
        rows = []
        yoga_list = _mapping(_mapping(raw, "yogas"), "yoga_list")
        for key, details in yoga_list.items():
            if isinstance(details, list | tuple):
                # [division, nom, condition, description]
                padded = [_str(v) for v in details] + [None] * (4 - len(details))
                rows.append(
                    NamedConditionORM(
                        **scope,
                        kind="yoga",
                        name=padded[1] or key,
                        description=padded[3] if padded[3] is not None else padded[2],
                        is_present=True,
                        source_key=key,
                        division=padded[0],
                        condition=padded[2],
                    )
                )
            elif details is None or isinstance(details, str):
                rows.append(
                    NamedConditionORM(**scope, kind="yoga", name=key, description=details)
                )
            else:
                raise ArtifactShapeError(f"yoga '{key}' must be an array or a string")

        for name, description in _mapping(raw, "doshas").items():
            if description is not None and not isinstance(description, str):
                raise ArtifactShapeError(f"dosha '{name}' description must be a string")
            rows.append(
                NamedConditionORM(
                    **scope,
                    kind="dosha",
                    name=name,
                    description=description,
                    is_present=dosha_present(description),
                )
            )
        return rows

    def _strengths(
        self, raw: dict[str, Any], scope: dict[str, str]
    ) -> list[StrengthTableORM]:
        return [
            StrengthTableORM(**scope, category=category, payload=raw[key])
            for key, category in STRENGTH_CATEGORIES.items()
            if raw.get(key) is not None
        ]

    def _points(
        self, raw: dict[str, Any], scope: dict[str, str]
    ) -> list[AstrologicalPointORM]:
        rows = []
        for key, category in POINT_CATEGORIES.items():
            for name, entry in _mapping(raw, key).items():
                if isinstance(entry, Mapping):
                    rows.append(
                        AstrologicalPointORM(
                            **scope,
                            category=category,
                            name=name,
                            longitude=_float(entry.get("longitude")),
                            sign=_str(entry.get("sign")),
                            house=_int(entry.get("house")),
                            associated_body=_str(entry.get("planet")),
                        )
                    )
                    continue
                text = entry if isinstance(entry, str) else str(entry)
                sign, longitude, body = parse_point_text(text)
                rows.append(
                    AstrologicalPointORM(
                        **scope,
                        category=category,
                        name=name,
                        longitude=longitude,
                        sign=sign,
                        associated_body=body,
                        raw_text=text,
                    )
                )
        return rows
