"""Tests de l'empreinte déterministe des paramètres de naissance."""

from natalstore.domain.entities import BirthParams
from natalstore.domain.fingerprint import birth_fingerprint


def test_fingerprint_known_digest(birth) -> None:
    """SHA-256 de `date|time|lat|lon|` (fuseau absent => chaîne vide)."""
    assert (
        birth_fingerprint(birth)
        == "c30c7673ad4a4320dac0d56ab2ad11a02f1bc85fdeac58e62756f496972f7358"
    )


def test_fingerprint_includes_timezone(birth) -> None:
    with_tz = birth.model_copy(update={"timezone": "Asia/Kolkata"})
    assert (
        birth_fingerprint(with_tz)
        == "a569b0a1b964466a238204de6628d66ace580d9d81bdcc08ee2c0a6bb1f0c255"
    )


def test_fingerprint_is_deterministic_and_ignores_location(birth) -> None:
    other = BirthParams(**birth.model_dump())
    located = birth.model_copy(update={"location": "Bengaluru"})
    assert birth_fingerprint(birth) == birth_fingerprint(other) == birth_fingerprint(located)


def test_fingerprint_no_semantic_normalization(birth) -> None:
    """Deux écritures d'une même date donnent deux empreintes distinctes."""
    other = birth.model_copy(update={"date": "14/05/1990"})
    assert birth_fingerprint(birth) != birth_fingerprint(other)
