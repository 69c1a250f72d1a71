# src/gridrecon_api/adapters/routers/metrics_router.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Prometheus scrape endpoint (`/metrics`).

Reconciliation histograms are created lazily by their accessors. The probe
creates them up front so the classic `_bucket`/`_count`/`_sum` series appear
on the very first scrape, before any run has finished.

Layer:
    adapters/routers
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Histogram, generate_latest

from gridrecon_api.infrastructure.logging.logger import get_json_logger
from gridrecon_api.infrastructure.observability.metrics import (
    get_http_request_duration_seconds,
    get_reconciliation_run_duration_seconds,
)

logger = get_json_logger(__name__)
router = APIRouter()


def _ensure_registered(getter: Callable[[], Histogram], name: str) -> None:
    try:
        getter()
    except ValueError as exc:  # pragma: no cover
        logger.debug(
            "metrics_router: failed registering histogram",
            extra={"metric": name, "error": str(exc)},
        )


@router.get("/metrics", include_in_schema=False)
async def metrics_probe() -> Response:
    """Expose Prometheus metrics in the text exposition format."""
    for getter, name in (
        (get_http_request_duration_seconds, "gridrecon_http_request_duration_seconds"),
        (
            get_reconciliation_run_duration_seconds,
            "gridrecon_reconciliation_run_duration_seconds",
        ),
    ):
        _ensure_registered(getter, name)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
