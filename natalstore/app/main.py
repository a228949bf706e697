"""
Application principale FastAPI.

Assemble le conteneur, les middlewares, les gestionnaires d'erreurs et les routes.

Responsabilités du module:
- Initialiser le logging structuré et le tracing
- Construire l'application FastAPI avec son titre/debug
- Ajouter les middlewares (request id, timing, Prometheus)
- Monter les routers (santé, horoscope, métriques)
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from natalstore.api.errors import register_error_handlers
from natalstore.api.routes_health import router as health_router
from natalstore.api.routes_horoscope import router as horoscope_router
from natalstore.app.metrics import PrometheusMiddleware, metrics_router
from natalstore.app.tracing import setup_tracing
from natalstore.core.container import Container, get_container
from natalstore.core.logging import setup_logging
from natalstore.middlewares.request_id import RequestIDMiddleware
from natalstore.middlewares.timing import TimingMiddleware


def create_app(container: Container | None = None) -> FastAPI:
    """
    Construit et retourne l'application FastAPI prête à l'usage.

    `container` permet d'injecter des dépendances (tests); par défaut le conteneur est
    construit depuis l'environnement.
    """
    container = container or get_container()
    settings = container.settings
    setup_logging(settings.APP_ENV)
    setup_tracing(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # laisse finir les peuplements de cache en cours
        await container.orchestrator.drain()

    app = FastAPI(title=settings.APP_NAME, debug=settings.APP_DEBUG, lifespan=lifespan)
    app.state.container = container
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(TimingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(horoscope_router)
    app.include_router(metrics_router)
    return app
