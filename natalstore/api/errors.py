"""Gestion standardisée des erreurs API avec enveloppes d'erreur.

Chaque erreur du cœur (`NatalStoreError`) est rendue dans l'enveloppe
`{success: false, code, message, trace_id}`; les exceptions inattendues deviennent
`INTERNAL_ERROR` sans détail interne.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from natalstore.core.http_constants import HTTP_INTERNAL_SERVER_ERROR, HTTP_UNPROCESSABLE_ENTITY
from natalstore.domain.errors import NatalStoreError

log = structlog.get_logger(__name__)


class ErrorCodes:
    """Codes d'erreur ajoutés par la couche HTTP."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    trace_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Crée une réponse d'erreur standardisée."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "code": code,
            "message": message,
            "trace_id": trace_id,
            **({"details": details} if details else {}),
        },
    )


def extract_trace_id(request: Request) -> str | None:
    """Trace ID: en-tête X-Trace-ID, sinon identifiant posé par le middleware."""
    trace_id = request.headers.get("X-Trace-ID")
    if trace_id:
        return trace_id
    return getattr(request.state, "request_id", None)


def handle_natal_error(request: Request, exc: NatalStoreError) -> JSONResponse:
    trace_id = extract_trace_id(request)
    log.warning(
        "api_error",
        code=exc.code,
        status_code=exc.status_code,
        error_message=exc.message,
        trace_id=trace_id,
        path=request.url.path,
    )
    return create_error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        trace_id=trace_id,
        details=exc.details,
    )


def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    trace_id = extract_trace_id(request)
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    log.info("api_validation_error", trace_id=trace_id, errors=len(errors))
    return create_error_response(
        status_code=HTTP_UNPROCESSABLE_ENTITY,
        code=ErrorCodes.VALIDATION_ERROR,
        message="Request validation failed",
        trace_id=trace_id,
        details={"errors": errors},
    )


def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
    trace_id = extract_trace_id(request)
    log.error(
        "unexpected_error",
        trace_id=trace_id,
        exception_type=type(exc).__name__,
        exc_info=exc,
    )
    return create_error_response(
        status_code=HTTP_INTERNAL_SERVER_ERROR,
        code=ErrorCodes.INTERNAL_ERROR,
        message="An unexpected error occurred",
        trace_id=trace_id,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NatalStoreError, handle_natal_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_generic_exception)
