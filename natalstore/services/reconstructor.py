"""Reconstruction de la vue composite à partir des collections normalisées.

Lecture pure: les six lectures dépendantes sont lancées en parallèle puis recomposées de façon
déterministe (ordre d'insertion). Deux reconstructions sans écriture intermédiaire renvoient
des structures égales.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import structlog

from natalstore.app.metrics import NATAL_RECONSTRUCT_LATENCY
from natalstore.domain.entities import RootRecord
from natalstore.domain.periods import join_label
from natalstore.infra.entity_store import EntityStore
from natalstore.services.normalizer import (
    ASCENDANT_KEY,
    DIGNITY_LISTS,
    POINT_CATEGORIES,
    STRENGTH_CATEGORIES,
)

log = structlog.get_logger(__name__)

_STRENGTH_KEYS = {category: key for key, category in STRENGTH_CATEGORIES.items()}
_POINT_KEYS = {category: key for key, category in POINT_CATEGORIES.items()}


def _planetary_states(bodies: list[dict[str, Any]]) -> dict[str, list[str]]:
    states = {
        "retrograde_planets": [b["name"] for b in bodies if b["is_retrograde"]],
        "combusted_planets": [b["name"] for b in bodies if b["is_combust"]],
    }
    for flag, key in DIGNITY_LISTS.items():
        names = [b["name"] for b in bodies if b[flag]]
        if names:
            states[key] = names
    return states


def _chart(chart: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if chart["ascendant"] is not None:
        out[ASCENDANT_KEY] = dict(chart["ascendant"])
    for p in chart["placements"]:
        placement = {"sign": p.get("sign"), "longitude": p.get("longitude")}
        if p.get("house") is not None:
            placement["house"] = p["house"]
        out[p["name"]] = placement
    return out


def _yoga_entry(row: dict[str, Any]) -> tuple[str, Any]:
    if row["source_key"] is None:
        return row["name"], row["description"]
    return row["source_key"], [
        row["division"],
        row["name"],
        row["condition"],
        row["description"],
    ]


def _point_entry(row: dict[str, Any]) -> Any:
    if row["raw_text"] is not None:
        return row["raw_text"]
    entry: dict[str, Any] = {"sign": row["sign"], "longitude": row["longitude"]}
    if row["house"] is not None:
        entry["house"] = row["house"]
    if row["associated_body"] is not None:
        entry["planet"] = row["associated_body"]
    return entry


def compose(
    root: RootRecord,
    bodies: list[dict[str, Any]],
    charts: list[dict[str, Any]],
    period_systems: list[dict[str, Any]],
    conditions: list[dict[str, Any]],
    strengths: list[dict[str, Any]],
    points: list[dict[str, Any]],
) -> dict[str, Any]:
    """Recompose la vue composite (fonction pure)."""
    metadata = dict(root.metadata)
    data: dict[str, Any] = {
        "ayanamsa_value": metadata.get("ayanamsa_value"),
        "julian_day": metadata.get("julian_day"),
        "planetary_states": _planetary_states(bodies),
        "nakshatra_pada": {
            b["name"]: {"nakshatra": b["nakshatra"], "pada": b["pada"]}
            for b in bodies
            if b["nakshatra"] is not None
        },
        "divisional_charts": {c["division"]: _chart(c) for c in charts},
        "graha_dashas": {
            s["system"]: [
                [join_label(p["primary"], p.get("secondary")), p["start"]]
                for p in s["periods"]
            ]
            for s in period_systems
        },
        "yogas": {
            "yoga_list": dict(
                _yoga_entry(c) for c in conditions if c["kind"] == "yoga"
            )
        },
        "doshas": {c["name"]: c["description"] for c in conditions if c["kind"] == "dosha"},
    }
    for s in strengths:
        key = _STRENGTH_KEYS.get(s["category"])
        if key:
            data[key] = s["payload"]
    for p in points:
        key = _POINT_KEYS.get(p["category"])
        if key:
            data.setdefault(key, {})[p["name"]] = _point_entry(p)
    return {
        "root_id": root.id,
        "fingerprint": root.fingerprint,
        "birth_details": dict(root.birth_details),
        "metadata": metadata,
        "horoscope_data": data,
    }


class Reconstructor:
    """Agrège la racine et ses dépendants en vue composite."""

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def reconstruct(self, tenant_id: str, root_id: str) -> dict[str, Any] | None:
        """Vue composite de la racine `root_id`, ou None si elle n'existe pas pour ce tenant.

        Un échec de n'importe quelle lecture fait échouer toute la reconstruction.
        """
        start = time.perf_counter()
        root = await self.store.get_root(tenant_id, root_id)
        if root is None:
            log.info("reconstruct_root_missing", tenant=tenant_id, root_id=root_id)
            return None
        run = self.store.run
        results = await asyncio.gather(
            run(lambda repo: repo.list_bodies(tenant_id, root_id)),
            run(lambda repo: repo.list_charts(tenant_id, root_id)),
            run(lambda repo: repo.list_period_systems(tenant_id, root_id)),
            run(lambda repo: repo.list_conditions(tenant_id, root_id)),
            run(lambda repo: repo.list_strengths(tenant_id, root_id)),
            run(lambda repo: repo.list_points(tenant_id, root_id)),
        )
        composite = compose(root, *results)
        NATAL_RECONSTRUCT_LATENCY.observe(time.perf_counter() - start)
        return composite

    async def reconstruct_by_fingerprint(
        self, tenant_id: str, fingerprint: str
    ) -> dict[str, Any] | None:
        root = await self.store.find_root(tenant_id, fingerprint)
        if root is None:
            return None
        return await self.reconstruct(tenant_id, root.id)
