"""Filtrage de la vue composite par sections nommées.

Les sections regroupent les clés du thème reconstruit; `full`/`all` (ou aucune section)
renvoie la vue complète inchangée.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

FULL_SECTIONS = {"full", "all"}

SECTION_KEYS: dict[str, tuple[str, ...]] = {
    "basic": (
        "calendar_info",
        "bhava_chart",
        "planetary_states",
        "nakshatra_pada",
        "ayanamsa_value",
        "julian_day",
    ),
    "charts": ("divisional_charts",),
    "dashas": ("graha_dashas",),
    "strengths": (
        "shad_bala",
        "bhava_bala",
        "other_bala",
        "vimsopaka_bala",
        "vaiseshikamsa_bala",
        "ashtakavarga",
    ),
    "special": (
        "chara_karakas",
        "sahams",
        "upagrahas",
        "special_lagnas",
        "arudha_padhas",
    ),
}
# Sections exposées telles quelles (pas de sous-dictionnaire)
FLAT_SECTIONS = ("yogas", "doshas")


def parse_sections(value: str | Iterable[str] | None) -> list[str] | None:
    """Accepte `"a,b"` ou une liste; retourne None si vide."""
    if value is None:
        return None
    items = value.split(",") if isinstance(value, str) else list(value)
    cleaned = [s.strip().lower() for s in items if s and s.strip()]
    return cleaned or None


def filter_sections(composite: dict[str, Any], sections: list[str] | None) -> dict[str, Any]:
    """Réduit la vue composite aux sections demandées."""
    if not sections or FULL_SECTIONS.intersection(sections):
        return composite
    data = composite.get("horoscope_data", {})
    result: dict[str, Any] = {
        "root_id": composite.get("root_id"),
        "fingerprint": composite.get("fingerprint"),
        "birth_details": composite.get("birth_details"),
        "sections": {},
    }
    for name in sections:
        if name in SECTION_KEYS:
            result["sections"][name] = {k: data.get(k) for k in SECTION_KEYS[name]}
        elif name in FLAT_SECTIONS:
            result["sections"][name] = data.get(name)
    return result
