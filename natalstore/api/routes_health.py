"""
Endpoint de santé pour vérifier la disponibilité de l'API et de ses backends.

Expose `/health` pour signaler l'état général de l'application, du magasin d'entités et du cache.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from natalstore.api.deps import get_container
from natalstore.core.container import Container

router = APIRouter(tags=["health"])
container_dep = Depends(get_container)


@router.get("/health")
def health(container: Container = container_dep):
    """Vérifie la disponibilité de l'API, de la base et le backend de cache."""
    try:
        with container.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        database = "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "cache": container.cache_backend,
        "redis_url": bool(container.settings.REDIS_URL),
    }
