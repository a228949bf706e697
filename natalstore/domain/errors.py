"""Taxonomie d'erreurs du moteur de normalisation.

Chaque erreur porte un code stable et un statut HTTP pour que la couche API produise une
enveloppe homogène sans exposer de détails internes. Le cœur ne rattrape aucune de ces
erreurs: elles remontent toutes à l'appelant de l'orchestrateur.
"""

from __future__ import annotations

from typing import Any

from natalstore.core.http_constants import (
    HTTP_BAD_GATEWAY,
    HTTP_CONFLICT,
    HTTP_FORBIDDEN,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_NOT_FOUND,
    HTTP_SERVICE_UNAVAILABLE,
    HTTP_UNAUTHORIZED,
    HTTP_UNPROCESSABLE_ENTITY,
)


class NatalStoreError(Exception):
    """Erreur de base: code stable + message lisible + statut HTTP."""

    code = "INTERNAL_ERROR"
    status_code = HTTP_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class AuthenticationError(NatalStoreError):
    """Jeton absent, invalide ou expiré."""

    code = "UNAUTHORIZED"
    status_code = HTTP_UNAUTHORIZED


class TenantRequiredError(NatalStoreError):
    """Requête sans workspace/tenant résolu."""

    code = "TENANT_REQUIRED"
    status_code = HTTP_FORBIDDEN


class NotConfiguredError(NatalStoreError):
    """Le tenant n'a pas de configuration fournisseur."""

    code = "CREDENTIALS_NOT_CONFIGURED"
    status_code = HTTP_SERVICE_UNAVAILABLE


class ProviderUnavailableError(NatalStoreError):
    """Réseau, timeout ou statut non-2xx côté fournisseur."""

    code = "PROVIDER_UNAVAILABLE"
    status_code = HTTP_BAD_GATEWAY


class MalformedProviderResponseError(NatalStoreError):
    """Réponse fournisseur illisible, même après réparation."""

    code = "MALFORMED_PROVIDER_RESPONSE"
    status_code = HTTP_BAD_GATEWAY


class DuplicateFingerprintError(NatalStoreError):
    """Course entre deux ingestions du même fingerprint pour un tenant.

    Fatale pour la requête perdante: l'appelant doit refaire une lecture, pas une ingestion.
    """

    code = "DUPLICATE_FINGERPRINT"
    status_code = HTTP_CONFLICT


class NotFoundError(NatalStoreError):
    """Racine, division ou système de périodes introuvable."""

    code = "NOT_FOUND"
    status_code = HTTP_NOT_FOUND


class TransactionError(NatalStoreError):
    """Échec de commit de la transaction d'ingestion."""

    code = "TRANSACTION_FAILED"
    status_code = HTTP_INTERNAL_SERVER_ERROR


class InvalidInputError(NatalStoreError):
    """Paramètre de requête illisible (hors validation du schéma)."""

    code = "VALIDATION_ERROR"
    status_code = HTTP_UNPROCESSABLE_ENTITY
