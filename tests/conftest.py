"""Configuration de test pour pytest: chemins, base SQLite temporaire et thème brut d'exemple.

Le magasin d'entités utilise un fichier SQLite sous `tmp_path` (les lectures concurrentes passent
par des threads de travail); le cache Tier-1 est l'implémentation en mémoire.
"""

import copy
import json
import os
import sys

import httpx
import jwt
import pytest

# Ensure project root is on sys.path so that
# imports like `from natalstore...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from natalstore.core.settings import Settings  # noqa: E402
from natalstore.domain.entities import BirthParams  # noqa: E402
from natalstore.infra.entity_store import EntityStore  # noqa: E402
from natalstore.infra.repo.db import create_schema, get_engine  # noqa: E402

JWT_SECRET = "test-secret"
PROVIDER_URL = "http://provider.test"

RAW_ARTIFACT = {
    "apiVersion": "2.1",
    "ayanamsa_value": 23.72,
    "julian_day": 2448025.85,
    "planetary_states": {
        "retrograde_planets": ["Mars"],
        "combusted_planets": ["Moon"],
        "exalted_planets": ["Sun"],
    },
    "nakshatra_pada": {
        "Sun": {"nakshatra": "Krittika", "pada": 2},
        "Moon": {"nakshatra": "Rohini", "pada": 1},
        "Mars": {"nakshatra": "Revati", "pada": 4},
    },
    "divisional_charts": {
        "D-1_rasi": {
            "Ascendant": {"sign": "Gemini", "longitude": 72.5},
            "Sun": {"sign": "Taurus", "longitude": 29.5, "house": 12},
            "Moon": {"sign": "Taurus", "longitude": 43.25},
            "Mars": {"sign": "Pisces", "longitude": 350.75, "house": 10},
        },
        "D-9_navamsa": {
            "Ascendant": {"sign": "Leo", "longitude": 130.0},
            "Sun": {"sign": "Aries", "longitude": 10.0},
            "Moon": {"sign": "Libra", "longitude": 190.5},
        },
    },
    "graha_dashas": {
        "vimsottari": [
            ["Moon", "1990-05-14T00:00:00.000Z"],
            ["Moon-Mars", "2000-01-01T00:00:00.000Z"],
            ["Mars", "2000-11-01T00:00:00.000Z"],
        ]
    },
    "yogas": {
        "yoga_list": {
            "gaja_kesari": ["D-1", "Gaja Kesari", "Jupiter in a kendra from Moon", "Fame"],
            "Budha-Aditya": "Sun and Mercury together",
        }
    },
    "doshas": {
        "manglik": "Mars placed in the 7th house",
        "kala_sarpa": "No kala sarpa dosha",
    },
    "shad_bala": {"Sun": 1.25, "Moon": 0.875},
    "ashtakavarga": {"Sun": [4, 5, 3]},
    "unknown_bala": {"Sun": 1},
    "sahams": {"punya": {"sign": "Leo", "longitude": 132.5, "house": 3}},
    "special_lagnas": {"hora_lagna": "Libra 12.5"},
    "chara_karakas": {"atma_karaka": "Sun", "amatya_karaka": "Moon"},
}


@pytest.fixture
def raw_artifact() -> dict:
    return copy.deepcopy(RAW_ARTIFACT)


@pytest.fixture
def birth() -> BirthParams:
    return BirthParams(date="1990-05-14", time="08:30", latitude=12.97, longitude=77.59)


@pytest.fixture
def engine(tmp_path):
    eng = get_engine(f"sqlite+pysqlite:///{tmp_path / 'natal.db'}")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> EntityStore:
    return EntityStore(engine)


class ProviderStub:
    """Transport httpx simulant le fournisseur: compte les appels, renvoie le thème brut."""

    def __init__(self, payload: dict | None = None, status_code: int = 200):
        self.payload = copy.deepcopy(payload if payload is not None else RAW_ARTIFACT)
        self.status_code = status_code
        self.calls: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return httpx.Response(self.status_code, text=json.dumps(self.payload))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def provider_stub() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        APP_ENV="test",
        DATABASE_URL=f"sqlite+pysqlite:///{tmp_path / 'app.db'}",
        REDIS_URL=None,
        REQUIRE_REDIS=False,
        JWT_SECRET=JWT_SECRET,
        PROVIDER_CONFIGS_JSON=json.dumps({"t1": {"api_url": PROVIDER_URL, "api_key": "k-1"}}),
    )


def make_token(claims: dict) -> str:
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Fabrique d'en-têtes Authorization pour des claims donnés."""

    def _make(**claims) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(claims)}"}

    return _make


@pytest.fixture
def failing_provider() -> ProviderStub:
    return ProviderStub(status_code=503)
