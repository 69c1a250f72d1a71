# src/gridrecon_api/infrastructure/observability/metrics.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Prometheus metrics utilities (registry-aware, hot-reload safe).

Collectors are exposed through accessor functions that return a *singleton*
bound to the **current** ``prometheus_client.REGISTRY``:
    - Safe under hot reload and tests that swap the default registry.
    - No duplicate-registration errors.
    - Cache automatically resets when the active registry changes.

Example:
    get_reconciliation_runs_total().labels(status="COMPLETED").inc()
    observe_report(report)
"""

from __future__ import annotations

import logging
import threading
from contextlib import suppress
from typing import Final

import prometheus_client as prom
from prometheus_client import Counter, Histogram

from gridrecon_api.domain.entities.reconciliation import ReconciliationReport
from gridrecon_api.domain.enums.reconciliation import TicketAction

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Run duration buckets (seconds); runs span sub-second to several minutes.
_RUN_BUCKETS: Final[tuple[float, ...]] = (
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
)

_HTTP_BUCKETS: Final[tuple[float, ...]] = (
    0.005,
    0.010,
    0.025,
    0.050,
    0.100,
    0.250,
    0.500,
    1.000,
    2.500,
    5.000,
)

# Cache keyed by metric name within the currently-active registry.
_registry_id: int | None = None
_hist_cache: dict[str, Histogram] = {}
_counter_cache: dict[str, Counter] = {}
_lock = threading.RLock()


# ---------------------------------------------------------------------------
# Registry-handling primitives


def _ensure_registry() -> None:
    """Reset caches if the active registry changed."""
    global _registry_id
    with _lock:
        rid = id(prom.REGISTRY)
        if _registry_id != rid:
            _hist_cache.clear()
            _counter_cache.clear()
            _registry_id = rid


def _lookup_existing(name: str) -> object | None:
    """Return a collector already registered under ``name`` on the active registry."""
    with _lock, suppress(Exception):
        mapping = getattr(prom.REGISTRY, "_names_to_collectors", None)
        if isinstance(mapping, dict):
            return mapping.get(name)
    return None


def _get_or_create_hist(
    name: str,
    help_text: str,
    *,
    buckets: tuple[float, ...],
    labelnames: tuple[str, ...] = (),
) -> Histogram:
    """Get or create a registry-bound ``Histogram`` with stable identity."""
    _ensure_registry()
    with _lock:
        cached = _hist_cache.get(name)
        if cached is not None:
            return cached

        existing = _lookup_existing(name)
        if isinstance(existing, Histogram):
            _hist_cache[name] = existing
            return existing

        try:
            h = Histogram(name, help_text, labelnames, buckets=buckets, registry=prom.REGISTRY)
        except ValueError:
            again = _lookup_existing(name)
            if isinstance(again, Histogram):
                _hist_cache[name] = again
                return again
            _log.exception("Failed to register Prometheus histogram %s", name)
            raise
        _hist_cache[name] = h
        return h


def _get_or_create_counter(
    name: str,
    help_text: str,
    *,
    labelnames: tuple[str, ...] = (),
) -> Counter:
    """Get or create a registry-bound ``Counter`` with stable identity."""
    _ensure_registry()
    with _lock:
        cached = _counter_cache.get(name)
        if cached is not None:
            return cached

        existing = _lookup_existing(name)
        if isinstance(existing, Counter):
            _counter_cache[name] = existing
            return existing

        try:
            c = Counter(name, help_text, labelnames, registry=prom.REGISTRY)
        except ValueError:
            again = _lookup_existing(name)
            if isinstance(again, Counter):
                _counter_cache[name] = again
                return again
            _log.exception("Failed to register Prometheus counter %s", name)
            raise
        _counter_cache[name] = c
        return c


# ---------------------------------------------------------------------------
# HTTP


def get_http_request_duration_seconds() -> Histogram:
    """Return histogram for HTTP request latency.

    Labels:
        method: HTTP verb.
        route: Route template (e.g., ``/v1/reconciliation/tickets/{ticket_id}``).
        status: Response status code.
    """
    return _get_or_create_hist(
        "gridrecon_http_request_duration_seconds",
        "Latency of HTTP requests (seconds)",
        buckets=_HTTP_BUCKETS,
        labelnames=("method", "route", "status"),
    )


# ---------------------------------------------------------------------------
# Database


def get_db_operation_duration_seconds() -> Histogram:
    """Return histogram for DB operation latency.

    Labels:
        operation: Logical operation name (e.g. ``save_final``).
        model: Logical model/table name (e.g. ``audit_tickets``).
        outcome: ``success`` or ``error``.
    """
    return _get_or_create_hist(
        "gridrecon_db_operation_duration_seconds",
        "Latency (seconds) of database operations.",
        buckets=_HTTP_BUCKETS,
        labelnames=("operation", "model", "outcome"),
    )


def get_db_errors_total() -> Counter:
    """Return counter for DB errors.

    Labels:
        operation: Logical operation name.
        model: Logical model/table name.
        reason: Error class or short reason.
    """
    return _get_or_create_counter(
        "gridrecon_db_errors_total",
        "Total database errors by operation/model.",
        labelnames=("operation", "model", "reason"),
    )


# ---------------------------------------------------------------------------
# Reconciliation


def get_reconciliation_runs_total() -> Counter:
    """Return counter of finished runs.

    Labels:
        status: ``COMPLETED`` or ``FAILED``.
        failure_code: Run failure code, empty on success.
    """
    return _get_or_create_counter(
        "gridrecon_reconciliation_runs_total",
        "Reconciliation runs by final status",
        labelnames=("status", "failure_code"),
    )


def get_reconciliation_run_duration_seconds() -> Histogram:
    """Return histogram of run wall time from start to finalization."""
    return _get_or_create_hist(
        "gridrecon_reconciliation_run_duration_seconds",
        "Duration of reconciliation runs (seconds)",
        buckets=_RUN_BUCKETS,
        labelnames=("status",),
    )


def get_reconciliation_zones_total() -> Counter:
    """Return counter of zone outcomes.

    Labels:
        status: ``ok|incomplete|degraded|not_processed``.
    """
    return _get_or_create_counter(
        "gridrecon_reconciliation_zones_total",
        "Zone outcomes across reconciliation runs",
        labelnames=("status",),
    )


def get_reconciliation_flags_total() -> Counter:
    """Return counter of classified results by severity tier and suspect flag."""
    return _get_or_create_counter(
        "gridrecon_reconciliation_classifications_total",
        "Classified zone results",
        labelnames=("tier", "suspect"),
    )


def get_audit_tickets_total() -> Counter:
    """Return counter of ticket actions.

    Labels:
        action: ``created|linked|failed|transitioned``.
    """
    return _get_or_create_counter(
        "gridrecon_audit_ticket_actions_total",
        "Audit ticket actions",
        labelnames=("action",),
    )


def get_notifications_total() -> Counter:
    """Return counter of broadcast notification attempts by result."""
    return _get_or_create_counter(
        "gridrecon_notifications_total",
        "Broadcast notifications sent for critical tickets",
        labelnames=("result",),
    )


def observe_report(report: ReconciliationReport) -> None:
    """Record the metrics of a final report."""
    get_reconciliation_runs_total().labels(
        status=report.status.value, failure_code=report.failure_code or ""
    ).inc()
    if report.completed_at is not None:
        get_reconciliation_run_duration_seconds().labels(status=report.status.value).observe(
            max(0.0, (report.completed_at - report.started_at).total_seconds())
        )
    zones = get_reconciliation_zones_total()
    for status, count in report.count_by_status().items():
        if count:
            zones.labels(status=status.value).inc(count)
    flags = get_reconciliation_flags_total()
    tickets = get_audit_tickets_total()
    for entry in report.entries:
        if entry.result is not None and entry.result.severity is not None:
            flags.labels(
                tier=entry.result.severity.value, suspect=str(entry.result.suspect).lower()
            ).inc()
        if entry.ticket_action is not TicketAction.NONE:
            tickets.labels(action=entry.ticket_action.value).inc()
