"""Petits utilitaires de formatage astrologique (maisons, degrés).

Purement arithmétiques: aucun calcul astronomique n'est fait ici.
"""

from __future__ import annotations

import math

BODY_NAMES = (
    "Sun",
    "Moon",
    "Mars",
    "Mercury",
    "Jupiter",
    "Venus",
    "Saturn",
    "Rahu",
    "Ketu",
)

ZODIAC_SIGNS = (
    "Aries",
    "Taurus",
    "Gemini",
    "Cancer",
    "Leo",
    "Virgo",
    "Libra",
    "Scorpio",
    "Sagittarius",
    "Capricorn",
    "Aquarius",
    "Pisces",
)

# Graphies alternatives émises par certains fournisseurs
_BODY_ALIASES = {"Raagu": "Rahu", "Kethu": "Ketu"}


def normalize_body_name(name: str) -> str:
    """Ramène les graphies alternatives (Raagu, Kethu) au nom canonique."""
    return _BODY_ALIASES.get(name, name)


def house_number(body_sign: str | None, lagna_sign: str | None) -> int | None:
    """Maison (1..12) d'un signe compté depuis le signe ascendant, ou None si inconnu."""
    if body_sign not in ZODIAC_SIGNS or lagna_sign not in ZODIAC_SIGNS:
        return None
    diff = ZODIAC_SIGNS.index(body_sign) - ZODIAC_SIGNS.index(lagna_sign)
    return diff % 12 + 1


def house_ordinal(n: int | None) -> str:
    """1 -> "1st", 2 -> "2nd", 11 -> "11th"; chaîne vide si None."""
    if n is None:
        return ""
    if 11 <= n % 100 <= 13:
        return f"{n}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def format_degree(deg: float | None) -> str:
    """Formate une longitude décimale en `D° M' S"`."""
    if deg is None:
        return "0° 0' 0\""
    d = math.floor(deg)
    minutes_total = (deg - d) * 60
    m = math.floor(minutes_total)
    s = math.floor((minutes_total - m) * 60)
    return f"{d}° {m}' {s}\""
