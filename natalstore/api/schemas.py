# Schémas Pydantic exposés par l'API (requêtes et réponses).

from typing import Any

from pydantic import BaseModel

from natalstore.domain.entities import BirthParams


class GenerateRequest(BaseModel):
    """Requête de génération d'un thème natal.

    Champs:
    - birth_details: paramètres de naissance (date, heure, lat/lon, fuseau, lieu)
    - sections: sections à renvoyer (liste ou CSV); toutes par défaut
    """

    birth_details: BirthParams
    sections: list[str] | str | None = None


class GenerateResponse(BaseModel):
    """Enveloppe de succès: `cached` vaut True si le thème existait déjà."""

    success: bool = True
    data: dict[str, Any]
    cached: bool


class DataResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]
