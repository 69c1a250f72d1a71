# src/gridrecon_api/infrastructure/middleware/request_id.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Request correlation middleware.

Every request gets one opaque id. It is taken from ``X-Request-ID`` or, when a
gateway in front of the service only sets ``X-Correlation-ID``, from that
header; malformed or missing values are replaced by a fresh UUID4.

The id is:
    * stored on ``request.state.request_id`` (error envelopes report it as
      ``trace_id``),
    * bound to the logging context so run and ticket log lines carry it,
    * echoed on the response ``X-Request-ID`` header,
    * forwarded to the broadcast service on ticket notifications.
"""

from __future__ import annotations

import re
import uuid
from typing import Final

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from gridrecon_api.infrastructure.logging.logger import set_request_context

REQUEST_ID_HEADER: Final[str] = "X-Request-ID"
CORRELATION_ID_HEADER: Final[str] = "X-Correlation-ID"
_SAFE_ID: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9\-_.:@]{1,128}$")


def resolve_request_id(*candidates: str | None) -> str:
    """Return the first well-formed candidate, or a new UUID4."""
    for raw in candidates:
        if raw and _SAFE_ID.match(raw):
            return raw
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to each request and echo it on the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(
            request.headers.get(REQUEST_ID_HEADER),
            request.headers.get(CORRELATION_ID_HEADER),
        )
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        response: Response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response
