"""Empreinte déterministe des paramètres de naissance.

Aucune normalisation sémantique n'est faite ici: deux formats différents de la même date
produisent deux empreintes différentes. La normalisation est la responsabilité de l'appelant.
"""

from __future__ import annotations

import hashlib

from natalstore.domain.entities import BirthParams

FINGERPRINT_DELIMITER = "|"


def birth_fingerprint(params: BirthParams) -> str:
    """Retourne le SHA-256 hexadécimal de `date|time|lat|lon|timezone`."""
    parts = [
        params.date,
        params.time,
        str(params.latitude),
        str(params.longitude),
        params.timezone or "",
    ]
    data = FINGERPRINT_DELIMITER.join(parts)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
