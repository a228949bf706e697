"""
Routes `/horoscope`: génération (ou relecture) d'un thème natal et lectures ciblées.

Toutes les routes exigent une identité rattachée à un workspace; les erreurs du cœur sont
rendues par les gestionnaires de `natalstore.api.errors`.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from natalstore.api.deps import get_container, get_identity
from natalstore.api.schemas import DataResponse, GenerateRequest, GenerateResponse
from natalstore.core.container import Container
from natalstore.domain.entities import Identity
from natalstore.domain.errors import InvalidInputError
from natalstore.domain.periods import parse_timestamp
from natalstore.domain.sections import parse_sections
from natalstore.services.orchestrator import DEFAULT_PERIOD_SYSTEM

router = APIRouter(prefix="/horoscope", tags=["horoscope"])
identity_dep = Depends(get_identity)
container_dep = Depends(get_container)


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    payload: GenerateRequest,
    identity: Identity = identity_dep,
    container: Container = container_dep,
):
    """
    Retourne le thème natal des paramètres fournis, calculé et normalisé au premier appel.

    Retour: `{success, data, cached}`; `cached` vaut True si le thème existait déjà.
    """
    result = await container.orchestrator.resolve(
        identity.tenant_id, payload.birth_details, parse_sections(payload.sections)
    )
    return {"success": True, "data": result.data, "cached": result.cached}


@router.get("/{fingerprint}", response_model=DataResponse)
async def get_horoscope(
    fingerprint: str,
    sections: str | None = Query(None, description="CSV: basic,charts,dashas,..."),
    identity: Identity = identity_dep,
    container: Container = container_dep,
):
    data = await container.orchestrator.get_by_fingerprint(
        identity.tenant_id, fingerprint, parse_sections(sections)
    )
    return {"success": True, "data": data}


@router.get("/{fingerprint}/charts/{division}", response_model=DataResponse)
async def get_chart(
    fingerprint: str,
    division: str,
    identity: Identity = identity_dep,
    container: Container = container_dep,
):
    """Carte divisionnelle (`D-1`, `D-9`, ...) avec maisons et degrés formatés."""
    data = await container.orchestrator.get_chart(identity.tenant_id, fingerprint, division)
    return {"success": True, "data": data}


@router.get("/{fingerprint}/dashas/current", response_model=DataResponse)
async def get_current_dasha(
    fingerprint: str,
    system: str = Query(DEFAULT_PERIOD_SYSTEM),
    date: str | None = Query(None, description="ISO-8601; maintenant par défaut"),
    identity: Identity = identity_dep,
    container: Container = container_dep,
):
    """Période active du système demandé à la date donnée."""
    as_of: datetime | None = None
    if date:
        try:
            as_of = parse_timestamp(date)
        except ValueError as err:
            raise InvalidInputError(f"Invalid date: {date}") from err
    data = await container.orchestrator.get_active_period(
        identity.tenant_id, fingerprint, system, as_of
    )
    return {"success": True, "data": data}
