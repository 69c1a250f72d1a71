# src/gridrecon_api/infrastructure/middleware/metrics.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Prometheus request metrics middleware.

Records request latency labelled by method, route template and status. The
route template (not the raw path) keeps label cardinality bounded.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from gridrecon_api.infrastructure.observability.metrics import (
    get_http_request_duration_seconds,
)

_UNMATCHED = "__unmatched__"


class PromMetricsMiddleware(BaseHTTPMiddleware):
    """Observe per-request latency on the shared Prometheus registry."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            template = getattr(route, "path", None) or _UNMATCHED
            get_http_request_duration_seconds().labels(
                method=request.method.upper(), route=template, status=str(status)
            ).observe(time.perf_counter() - started)
