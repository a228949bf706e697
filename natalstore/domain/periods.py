"""Systèmes de périodes (dashas): décomposition des libellés et période active.

Une période brute est une paire `[libellé, horodatage]`. Le libellé `Primaire-Secondaire`
est scindé sur le premier séparateur; la fin d'une période est le début de la suivante,
la dernière est ouverte.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

LABEL_SEPARATOR = "-"
SECONDS_PER_DAY = 86400


def split_label(label: str) -> tuple[str, str | None, int]:
    """Retourne `(primaire, secondaire|None, niveau)` pour un libellé de période."""
    primary, sep, secondary = label.partition(LABEL_SEPARATOR)
    if sep and secondary:
        return primary, secondary, 2
    return primary, None, 1


def join_label(primary: str, secondary: str | None) -> str:
    """Inverse de `split_label`."""
    return f"{primary}{LABEL_SEPARATOR}{secondary}" if secondary else primary


def parse_timestamp(value: Any) -> datetime:
    """Parse un horodatage ISO-8601 (ou datetime) en datetime UTC.

    Les valeurs naïves sont supposées UTC. Lève ValueError si illisible.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso(dt: datetime) -> str:
    """Sérialise en ISO-8601 UTC millisecondes, suffixe `Z`."""
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def decompose_periods(raw_periods: Iterable[Sequence[Any]]) -> list[dict[str, Any]]:
    """Convertit les paires brutes en périodes triées par début croissant (tri stable)."""
    periods = []
    for entry in raw_periods:
        if not isinstance(entry, list | tuple) or len(entry) < 2:  # noqa: PLR2004
            raise ValueError(f"invalid period entry: {entry!r}")
        label, stamp = entry[0], entry[1]
        if not isinstance(label, str) or not label:
            raise ValueError(f"invalid period label: {label!r}")
        primary, secondary, level = split_label(label)
        start = parse_timestamp(stamp)
        periods.append(
            {"primary": primary, "secondary": secondary, "start": start, "level": level}
        )
    periods.sort(key=lambda p: p["start"])
    for p in periods:
        p["start"] = to_iso(p["start"])
    return periods


def find_active_period(
    periods: Sequence[dict[str, Any]], as_of: datetime
) -> dict[str, Any] | None:
    """Période active à `as_of`: la dernière dont le début est <= `as_of`.

    Retourne None si `as_of` précède la première période. Les périodes doivent être triées.
    """
    as_of = parse_timestamp(as_of)
    starts = [parse_timestamp(p["start"]) for p in periods]
    idx = bisect_right(starts, as_of) - 1
    if idx < 0:
        return None
    current = periods[idx]
    end = starts[idx + 1] if idx + 1 < len(starts) else None
    days_remaining = None
    if end is not None:
        days_remaining = math.ceil((end - as_of).total_seconds() / SECONDS_PER_DAY)
    return {
        "period": join_label(current["primary"], current.get("secondary")),
        "primary": current["primary"],
        "secondary": current.get("secondary"),
        "level": current.get("level", 1),
        "start_date": current["start"],
        "end_date": to_iso(end) if end is not None else None,
        "days_remaining": days_remaining,
    }
