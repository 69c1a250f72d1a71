# src/gridrecon_api/infrastructure/http/errors.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Global exception handlers producing the canonical error envelope."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from gridrecon_api.domain.exceptions.base import DomainError
from gridrecon_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)

#: HTTP status per domain error code; unknown codes map to 400.
DOMAIN_ERROR_STATUS: dict[str, int] = {
    "INVALID_WINDOW": 400,
    "INVALID_TICKET": 400,
    "ZONE_CONFIGURATION": 400,
    "MIXED_READING_KINDS": 400,
    "DATA_GAP": 400,
    "ZONE_NOT_FOUND": 404,
    "TICKET_NOT_FOUND": 404,
    "RUN_NOT_FOUND": 404,
    "INVALID_TRANSITION": 409,
    "TICKET_LOCK_CONFLICT": 409,
    "TOPOLOGY_INCONSISTENCY": 409,
    "STORAGE_ERROR": 503,
}


def trace_id_of(request: Request) -> str | None:
    """Return the correlation id stored on the request, if any."""
    state = getattr(request, "state", None)
    return getattr(state, "request_id", None) or getattr(state, "trace_id", None)


def status_for(exc: DomainError) -> int:
    """Return the HTTP status mapped to a domain error."""
    return DOMAIN_ERROR_STATUS.get(exc.code, 400)


def error_envelope(
    *,
    code: str,
    http_status: int,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    err: dict[str, Any] = {
        "code": code,
        "http_status": http_status,
        "message": message,
    }
    if details is not None:
        err["details"] = details
    if trace_id is not None:
        err["trace_id"] = trace_id
    return {"error": err}


async def handle_domain_error(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, DomainError)
    status = status_for(exc)
    payload = error_envelope(
        code=exc.code,
        http_status=status,
        message=exc.message or exc.code,
        details=dict(exc.details) or None,
        trace_id=trace_id_of(request),
    )
    return JSONResponse(status_code=status, content=payload)


async def handle_validation_error(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, RequestValidationError)
    payload = error_envelope(
        code="VALIDATION_ERROR",
        http_status=422,
        message="Request validation failed",
        details={"errors": jsonable_errors(exc)},
        trace_id=trace_id_of(request),
    )
    return JSONResponse(status_code=422, content=payload)


async def handle_http_exception(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, HTTPException)
    payload = error_envelope(
        code="HTTP_ERROR",
        http_status=exc.status_code,
        message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
        details=None if isinstance(exc.detail, str) else {"detail": exc.detail},
        trace_id=trace_id_of(request),
    )
    return JSONResponse(status_code=exc.status_code, content=payload)


async def handle_unhandled_exception(request: Request, exc: Exception) -> Response:
    logger.exception("http.unhandled", extra={"path": request.url.path})
    payload = error_envelope(
        code="INTERNAL_ERROR",
        http_status=500,
        message="Internal server error",
        details=None,
        trace_id=trace_id_of(request),
    )
    return JSONResponse(status_code=500, content=payload)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Return validation errors stripped of non-serializable context."""
    cleaned: list[dict[str, Any]] = []
    for err in exc.errors():
        item = {k: v for k, v in err.items() if k in {"type", "loc", "msg"}}
        cleaned.append(item)
    return cleaned
