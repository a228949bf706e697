# ============================================================
# Tests : tests/test_normalizer.py
# Objet  : Ingestion atomique, doublons concurrents, isolation des tenants.
# ============================================================
"""Tests du normaliseur (décomposition du thème brut en collections)."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import event, func, select

from natalstore.domain.entities import RootRecord
from natalstore.domain.errors import (
    DuplicateFingerprintError,
    MalformedProviderResponseError,
    TransactionError,
)
from natalstore.infra.repo.db import session_scope
from natalstore.infra.repo.models import CelestialBodyORM, NatalRootORM
from natalstore.services.normalizer import Normalizer, dosha_present, parse_point_text

FP = "f" * 64


def _count(engine, model) -> int:
    with session_scope(engine) as s:
        return s.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.mark.asyncio
async def test_ingest_decomposes_all_sections(store, birth, raw_artifact) -> None:
    root = await Normalizer(store, provider_name="jhora").ingest("t1", FP, birth, raw_artifact)
    assert root.fingerprint == FP and root.tenant_id == "t1"
    assert root.metadata == {
        "source_api": "jhora",
        "api_version": "2.1",
        "ayanamsa_value": 23.72,
        "julian_day": 2448025.85,
    }

    bodies = await store.run(lambda repo: repo.list_bodies("t1", root.id))
    by_name = {b["name"]: b for b in bodies}
    assert [b["name"] for b in bodies] == ["Sun", "Moon", "Mars"]
    assert by_name["Mars"]["is_retrograde"] and not by_name["Sun"]["is_retrograde"]
    assert by_name["Moon"]["is_combust"]
    assert by_name["Sun"]["is_exalted"] and not by_name["Moon"]["is_exalted"]
    assert by_name["Sun"]["house"] == 12 and by_name["Moon"]["house"] is None
    assert by_name["Mars"]["nakshatra"] == "Revati" and by_name["Mars"]["pada"] == 4

    charts = await store.run(lambda repo: repo.list_charts("t1", root.id))
    assert [(c["division"], c["source_key"]) for c in charts] == [
        ("D-1", "D-1_rasi"),
        ("D-9", "D-9_navamsa"),
    ]
    assert charts[0]["ascendant"] == {"sign": "Gemini", "longitude": 72.5}
    assert [p["name"] for p in charts[0]["placements"]] == ["Sun", "Moon", "Mars"]

    systems = await store.run(lambda repo: repo.list_period_systems("t1", root.id))
    assert systems[0]["system"] == "vimsottari"
    assert systems[0]["periods"][1]["secondary"] == "Mars"

    conditions = await store.run(lambda repo: repo.list_conditions("t1", root.id))
    presence = {(c["kind"], c["name"]): c["is_present"] for c in conditions}
    assert presence[("yoga", "Gaja Kesari")] is True
    assert presence[("yoga", "Budha-Aditya")] is True
    assert presence[("dosha", "manglik")] is True
    assert presence[("dosha", "kala_sarpa")] is False

    strengths = await store.run(lambda repo: repo.list_strengths("t1", root.id))
    assert [s["category"] for s in strengths] == ["ShadBala", "Ashtakavarga"]

    points = await store.run(lambda repo: repo.list_points("t1", root.id))
    by_point = {p["name"]: p for p in points}
    assert by_point["punya"]["category"] == "Saham" and by_point["punya"]["house"] == 3
    assert by_point["hora_lagna"]["sign"] == "Libra"
    assert by_point["hora_lagna"]["longitude"] == 12.5
    assert by_point["atma_karaka"]["associated_body"] == "Sun"
    assert by_point["atma_karaka"]["raw_text"] == "Sun"


@pytest.mark.asyncio
async def test_absent_bodies_are_skipped(store, birth, raw_artifact) -> None:
    raw_artifact["divisional_charts"]["D-1_rasi"].pop("Mars")
    root = await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    bodies = await store.run(lambda repo: repo.list_bodies("t1", root.id))
    assert [b["name"] for b in bodies] == ["Sun", "Moon"]


@pytest.mark.asyncio
async def test_duplicate_fingerprint_is_rejected(engine, store, birth, raw_artifact) -> None:
    normalizer = Normalizer(store)
    first = await normalizer.ingest("t1", FP, birth, raw_artifact)
    with pytest.raises(DuplicateFingerprintError):
        await normalizer.ingest("t1", FP, birth, raw_artifact)
    assert _count(engine, NatalRootORM) == 1
    # la racine existante n'est pas écrasée
    assert (await store.find_root("t1", FP)).id == first.id


@pytest.mark.asyncio
async def test_concurrent_ingestion_has_single_winner(engine, store, birth, raw_artifact) -> None:
    """Deux ingestions simultanées du même fingerprint: une racine, un perdant en doublon."""
    normalizer = Normalizer(store)
    results = await asyncio.gather(
        normalizer.ingest("t1", FP, birth, raw_artifact),
        normalizer.ingest("t1", FP, birth, raw_artifact),
        return_exceptions=True,
    )
    winners = [r for r in results if isinstance(r, RootRecord)]
    losers = [r for r in results if isinstance(r, DuplicateFingerprintError)]
    assert len(winners) == 1 and len(losers) == 1
    assert _count(engine, NatalRootORM) == 1
    assert _count(engine, CelestialBodyORM) == 3


@pytest.mark.asyncio
async def test_same_fingerprint_isolated_per_tenant(store, birth, raw_artifact) -> None:
    normalizer = Normalizer(store)
    r1 = await normalizer.ingest("t1", FP, birth, raw_artifact)
    r2 = await normalizer.ingest("t2", FP, birth, raw_artifact)
    assert r1.id != r2.id
    assert (await store.find_root("t2", FP)).id == r2.id
    assert await store.get_root("t2", r1.id) is None
    assert await store.run(lambda repo: repo.list_bodies("t2", r1.id)) == []


@pytest.mark.asyncio
async def test_malformed_section_rolls_back_everything(engine, store, birth, raw_artifact) -> None:
    raw_artifact["graha_dashas"]["vimsottari"].append(["Rahu", "not-a-date"])
    with pytest.raises(MalformedProviderResponseError):
        await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    assert await store.find_root("t1", FP) is None
    assert _count(engine, NatalRootORM) == 0
    assert _count(engine, CelestialBodyORM) == 0


@pytest.mark.asyncio
async def test_dependent_constraint_failure_rolls_back(engine, store, birth, raw_artifact) -> None:
    """Deux cartes pour la même division: échec de transaction, aucune racine visible."""
    raw_artifact["divisional_charts"]["D-1_alt"] = {"Sun": {"sign": "Leo", "longitude": 120.0}}
    with pytest.raises(TransactionError):
        await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    assert _count(engine, NatalRootORM) == 0
    assert _count(engine, CelestialBodyORM) == 0


@pytest.mark.asyncio
async def test_wrongly_shaped_section_is_malformed(store, birth, raw_artifact) -> None:
    raw_artifact["doshas"] = ["manglik"]
    with pytest.raises(MalformedProviderResponseError):
        await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    assert await store.find_root("t1", FP) is None


@pytest.mark.parametrize(
    "mutate",
    [
        lambda raw: raw["divisional_charts"]["D-1_rasi"]["Sun"].update(sign={"x": 1}),
        lambda raw: raw["divisional_charts"]["D-9_navamsa"]["Ascendant"].update(sign=7),
        lambda raw: raw["nakshatra_pada"]["Moon"].update(nakshatra=["Rohini"]),
        lambda raw: raw["yogas"]["yoga_list"].update(bad=["D-1", {"name": "x"}]),
        lambda raw: raw["sahams"]["punya"].update(planet=3),
    ],
)
@pytest.mark.asyncio
async def test_non_text_values_are_malformed(engine, store, birth, raw_artifact, mutate) -> None:
    mutate(raw_artifact)
    with pytest.raises(MalformedProviderResponseError):
        await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    assert _count(engine, NatalRootORM) == 0


@pytest.mark.asyncio
async def test_alias_chart_keys_are_recognized(store, birth, raw_artifact) -> None:
    raw_artifact["divisional_charts"]["D-1_rasi"]["Raagu"] = {"sign": "Aries", "longitude": 5.0}
    raw_artifact["nakshatra_pada"]["Raagu"] = {"nakshatra": "Ashwini", "pada": 2}
    raw_artifact["planetary_states"]["retrograde_planets"].append("Raagu")
    root = await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    bodies = {b["name"]: b for b in await store.run(lambda repo: repo.list_bodies("t1", root.id))}
    assert bodies["Rahu"]["sign"] == "Aries"
    assert bodies["Rahu"]["nakshatra"] == "Ashwini"
    assert bodies["Rahu"]["is_retrograde"] is True


def test_dosha_presence_heuristic() -> None:
    assert dosha_present("Mars placed in the 7th house") is True
    assert dosha_present("No manglik dosha") is False
    # heuristique conservée telle quelle: « no » dans un autre mot
    assert dosha_present("Present, as is well known") is False
    assert dosha_present(None) is True


def test_parse_point_text() -> None:
    assert parse_point_text("Libra 12.5") == ("Libra", 12.5, None)
    assert parse_point_text("Raagu") == (None, None, "Rahu")
    assert parse_point_text("somewhere") == (None, None, None)


@pytest.mark.asyncio
async def test_only_ingestion_takes_the_write_lock(engine, store, birth, raw_artifact) -> None:
    begins: list[str] = []

    @event.listens_for(engine, "before_cursor_execute")
    def _record(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("BEGIN"):
            begins.append(statement)

    root = await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    assert begins == ["BEGIN IMMEDIATE"]
    begins.clear()
    await store.get_root("t1", root.id)
    await store.run(lambda repo: repo.list_bodies("t1", root.id))
    assert begins == ["BEGIN", "BEGIN"]
