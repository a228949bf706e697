"""Tests du reconstructeur: loi d'aller-retour, idempotence, racines absentes."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from natalstore.infra.repo.natal_repo import NatalRepo
from natalstore.services.normalizer import Normalizer, division_code
from natalstore.services.reconstructor import Reconstructor

FP = "a" * 64


@pytest_asyncio.fixture
async def ingested(store, birth, raw_artifact):
    return await Normalizer(store).ingest("t1", FP, birth, raw_artifact)


@pytest.mark.asyncio
async def test_round_trip_preserves_raw_sections(store, ingested, raw_artifact) -> None:
    composite = await Reconstructor(store).reconstruct("t1", ingested.id)
    assert composite["root_id"] == ingested.id
    assert composite["fingerprint"] == FP
    assert composite["birth_details"] == {
        "date": "1990-05-14",
        "time": "08:30",
        "latitude": 12.97,
        "longitude": 77.59,
        "timezone": None,
    }
    data = composite["horoscope_data"]
    assert data["ayanamsa_value"] == raw_artifact["ayanamsa_value"]
    assert data["julian_day"] == raw_artifact["julian_day"]
    assert data["planetary_states"] == raw_artifact["planetary_states"]
    assert data["nakshatra_pada"] == raw_artifact["nakshatra_pada"]
    # clés de cartes ramenées au code de division
    assert data["divisional_charts"] == {
        division_code(k): v for k, v in raw_artifact["divisional_charts"].items()
    }
    assert data["graha_dashas"] == raw_artifact["graha_dashas"]
    assert data["yogas"] == raw_artifact["yogas"]
    assert data["doshas"] == raw_artifact["doshas"]
    for key in ("shad_bala", "ashtakavarga", "sahams", "special_lagnas", "chara_karakas"):
        assert data[key] == raw_artifact[key]
    assert "unknown_bala" not in data


@pytest.mark.asyncio
async def test_planetary_state_membership(store, birth, raw_artifact) -> None:
    """Thème brut avec Sun, Moon, Mars en D-1: appartenance rétrograde/combuste conservée."""
    raw_artifact["planetary_states"] = {
        "retrograde_planets": ["Mars", "Moon"],
        "combusted_planets": ["Sun"],
    }
    root = await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    states = (await Reconstructor(store).reconstruct("t1", root.id))["horoscope_data"][
        "planetary_states"
    ]
    assert set(states["retrograde_planets"]) == {"Mars", "Moon"}
    assert states["combusted_planets"] == ["Sun"]
    assert "exalted_planets" not in states


@pytest.mark.asyncio
async def test_reconstruction_is_idempotent(store, ingested) -> None:
    reconstructor = Reconstructor(store)
    first = await reconstructor.reconstruct("t1", ingested.id)
    second = await reconstructor.reconstruct("t1", ingested.id)
    assert first == second


@pytest.mark.asyncio
async def test_missing_or_foreign_root_is_none(store, ingested) -> None:
    reconstructor = Reconstructor(store)
    assert await reconstructor.reconstruct("t1", "does-not-exist") is None
    assert await reconstructor.reconstruct("t2", ingested.id) is None


@pytest.mark.asyncio
async def test_reconstruct_by_fingerprint(store, ingested) -> None:
    reconstructor = Reconstructor(store)
    composite = await reconstructor.reconstruct_by_fingerprint("t1", FP)
    assert composite["root_id"] == ingested.id
    assert await reconstructor.reconstruct_by_fingerprint("t2", FP) is None


@pytest.mark.asyncio
async def test_failed_dependent_read_fails_whole_reconstruction(
    store, ingested, monkeypatch
) -> None:
    """Une seule lecture dépendante en échec: erreur propagée, aucune vue partielle."""

    def broken(self, tenant_id, root_id):
        raise OperationalError("SELECT strength_tables", {}, Exception("disk I/O error"))

    monkeypatch.setattr(NatalRepo, "list_strengths", broken)
    composite = None
    with pytest.raises(OperationalError):
        composite = await Reconstructor(store).reconstruct("t1", ingested.id)
    assert composite is None
