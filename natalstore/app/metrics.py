"""
Métriques Prometheus pour l'application.

Ce module définit les métriques du moteur de normalisation (cache, ingestion, fournisseur,
reconstruction) ainsi que les métriques HTTP et l'endpoint `/metrics`.
"""

import time

from fastapi import APIRouter, Request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

metrics_router = APIRouter()

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "route", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Latency of HTTP requests", ["route"]
)

# Two-tier lookup chain
NATAL_LOOKUPS = Counter(
    "natal_lookups_total",
    "Lookups per tier and result (hit/miss)",
    ["tier", "result", "tenant"],
)
NATAL_CACHE_ERRORS = Counter(
    "natal_cache_errors_total",
    "Tier-1 cache backend errors (degraded to miss)",
    ["op"],
)

# Ingestion / reconstruction
NATAL_INGESTIONS = Counter(
    "natal_ingestions_total",
    "Ingestion transactions by outcome",
    ["outcome", "tenant"],
)
NATAL_RECONSTRUCT_LATENCY = Histogram(
    "natal_reconstruct_latency_seconds",
    "Latency of composite reconstruction",
)

# Provider
PROVIDER_REQUESTS = Counter(
    "natal_provider_requests_total",
    "Calls to the calculation provider by outcome",
    ["outcome"],
)
PROVIDER_LATENCY = Histogram(
    "natal_provider_latency_seconds",
    "Latency of calculation provider calls",
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0],
)
PROVIDER_JSON_REPAIRS = Counter(
    "natal_provider_json_repairs_total",
    "Malformed provider payloads and repair result",
    ["result"],
)


def _normalize_allowed(allowed: list[str] | str | None) -> list[str]:
    """Normalize allowed values from settings (list or CSV string)."""
    if not allowed:
        return []
    if isinstance(allowed, list):
        if len(allowed) == 1 and "," in (allowed[0] or ""):
            return [s.strip() for s in allowed[0].split(",") if s.strip()]
        return [str(x).strip() for x in allowed if str(x).strip()]
    return [s.strip() for s in str(allowed).split(",") if s.strip()]


def labelize_tenant(tenant: str | None, allowed: list[str] | str | None) -> str:
    """Project tenant label through a whitelist; otherwise 'unknown'."""
    vals = set(_normalize_allowed(allowed))
    if not vals:
        return tenant or "default"
    return (tenant or "").strip() if (tenant or "").strip() in vals else "unknown"


@metrics_router.get("/metrics")
def metrics():
    """
    Expose les métriques Prometheus au format texte.

    Returns:
        Response: Réponse HTTP contenant les métriques au format Prometheus.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware Prometheus pour mesurer les métriques HTTP.

    Collecte les métriques de comptage des requêtes et de latence par route.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        route_obj = request.scope.get("route")
        route = getattr(route_obj, "path", None) or "unmatched"
        REQUEST_COUNT.labels(request.method, route, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(route).observe(time.perf_counter() - start)
        return response
