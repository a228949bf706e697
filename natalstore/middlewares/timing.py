"""Middleware Starlette: durée de traitement en en-tête (`X-Process-Time-ms`).

Les requêtes plus lentes que `slow_ms` sont journalisées.
"""

import time
from collections.abc import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

log = structlog.get_logger(__name__)


class TimingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self, app: ASGIApp, header_name: str = "X-Process-Time-ms", slow_ms: int = 2000
    ) -> None:
        super().__init__(app)
        self.header_name = header_name
        self.slow_ms = slow_ms

    async def dispatch(self, request, call_next: Callable):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers[self.header_name] = str(duration_ms)
        if duration_ms >= self.slow_ms:
            log.warning("slow_request", path=request.url.path, duration_ms=duration_ms)
        return response
