# src/gridrecon_api/adapters/routers/base_router.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Base Router (Adapters Layer).

Purpose:
    Canonical APIRouter wrapper and shared utilities for GridRecon endpoints:
        - Versioned routing with stable prefixes (e.g., "/v1/reconciliation").
        - Standard error responses documented with ErrorEnvelope.
        - Translation of domain errors into ErrorEnvelope JSON responses.

Layer:
    adapters/routers
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from gridrecon_api.adapters.schemas.http.envelopes import ErrorEnvelope, ErrorObject
from gridrecon_api.domain.exceptions.base import DomainError
from gridrecon_api.infrastructure.http.errors import status_for, trace_id_of
from gridrecon_api.infrastructure.logging.logger import get_json_logger

_LOGGER = get_json_logger(__name__)

TagType = str | Enum


class BaseRouter(APIRouter):
    """Canonical router wrapper for GridRecon HTTP endpoints."""

    def __init__(
        self,
        *,
        version: str,
        resource: str,
        prefix: str | None = None,
        tags: Sequence[TagType] | None = None,
        dependencies: Sequence[Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the router with a versioned prefix and common settings.

        Args:
            version: API version segment (e.g., "v1").
            resource: Resource segment (e.g., "reconciliation").
            prefix: Optional explicit prefix; defaults to f"/{version}/{resource}".
            tags: Optional default tags for the router's endpoints.
            dependencies: Optional dependencies applied to all routes.
            **kwargs: Additional keyword arguments forwarded to APIRouter.
        """
        computed_prefix = prefix or f"/{version}/{resource}"
        super().__init__(
            prefix=computed_prefix,
            tags=list(tags) if tags is not None else None,
            dependencies=list(dependencies) if dependencies is not None else None,
            **kwargs,
        )
        _LOGGER.debug(
            "router_initialized",
            extra={"service": "gridrecon_api", "prefix": computed_prefix},
        )

    @staticmethod
    def std_error_responses() -> dict[int | str, dict[str, Any]]:
        """Return the canonical documented error responses."""
        return {
            400: {"model": ErrorEnvelope, "description": "Bad request."},
            404: {"model": ErrorEnvelope, "description": "Not found."},
            409: {
                "model": ErrorEnvelope,
                "description": (
                    "Conflict.\n\n"
                    "**Error codes:**\n"
                    "- `INVALID_TRANSITION`: Transition not allowed or ticket changed meanwhile.\n"
                    "- `TICKET_LOCK_CONFLICT`: The zone is busy; retry shortly."
                ),
            },
            422: {"model": ErrorEnvelope, "description": "Unprocessable content."},
            500: {"model": ErrorEnvelope, "description": "Internal server error."},
            503: {"model": ErrorEnvelope, "description": "Storage unavailable."},
        }


def trace_id_for(request: Request, response: Response | None = None) -> str | None:
    """Return the request correlation id (X-Request-ID), if present."""
    if response is not None:
        header = response.headers.get("X-Request-ID")
        if header:
            return header
    return trace_id_of(request)


def error_response(
    *,
    http_status: int,
    code: str,
    message: str,
    trace_id: str | None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build a JSONResponse carrying a standard error envelope."""
    envelope = ErrorEnvelope(
        error=ErrorObject(
            code=code,
            http_status=http_status,
            message=message,
            details=details or {},
            trace_id=trace_id,
        ),
    )
    return JSONResponse(status_code=http_status, content=envelope.model_dump(mode="json"))


def domain_error_response(exc: DomainError, *, trace_id: str | None) -> JSONResponse:
    """Translate a domain error using its stable code."""
    return error_response(
        http_status=status_for(exc),
        code=exc.code,
        message=exc.message or exc.code,
        trace_id=trace_id,
        details=dict(exc.details),
    )


__all__ = ["BaseRouter", "domain_error_response", "error_response", "trace_id_for"]
