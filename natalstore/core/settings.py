"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
    )
    APP_NAME: str = "natal-store"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = False

    DATABASE_URL: str | None = None
    REDIS_URL: str | None = None
    REQUIRE_REDIS: bool = False
    # Tier-1 cache: fingerprint -> root id (7 jours par défaut)
    CACHE_TTL_SECONDS: int = 604800

    # Fournisseur de calcul externe
    PROVIDER_NAME: str = "jhora"
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    # {"tenant": {"api_url": "...", "api_key": "..."}}
    PROVIDER_CONFIGS_JSON: str = "{}"

    # JWT/Auth (jeton émis par le service d'identité)
    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALG: str = "HS256"

    OTLP_ENDPOINT: str | None = None
    # Limitation de cardinalité des labels métriques (CSV via .env, peut être vide)
    ALLOWED_TENANTS: list[str] = []


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()
