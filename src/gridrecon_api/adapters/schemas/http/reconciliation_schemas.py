# src/gridrecon_api/adapters/schemas/http/reconciliation_schemas.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""HTTP schemas for reconciliation runs and zone summaries.

Layer:
    adapters/schemas/http
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator, model_validator

from gridrecon_api.adapters.schemas.http.base import BaseHTTPSchema, DecimalStr, UtcDatetime
from gridrecon_api.domain.enums.reconciliation import (
    RunStatus,
    SeverityTier,
    TicketAction,
    ZoneRunStatus,
)


class RunReconciliationRequestHTTP(BaseHTTPSchema):
    """Body of ``POST /v1/reconciliation/run``.

    Both window bounds or neither; without bounds the last completed billing
    interval is reconciled.
    """

    window_start: datetime | None = Field(default=None, description="Inclusive window start.")
    window_end: datetime | None = Field(default=None, description="Exclusive window end.")
    triggered_by: str = Field(
        default="operator", min_length=1, max_length=128, description="Caller label."
    )
    deadline_seconds: float | None = Field(
        default=None,
        ge=0,
        description="Run deadline in seconds; 0 disables it, null uses the server default.",
    )
    run_async: bool = Field(
        default=False,
        alias="async",
        description="Return 202 with a run handle instead of waiting for the report.",
    )

    @field_validator("window_start", "window_end")
    @classmethod
    def _require_timezone(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            raise ValueError("window bounds must include a timezone offset")
        return v

    @model_validator(mode="after")
    def _both_or_neither(self) -> RunReconciliationRequestHTTP:
        if (self.window_start is None) != (self.window_end is None):
            raise ValueError("window_start and window_end must be given together")
        return self


class ReconciliationResultHTTP(BaseHTTPSchema):
    """Energy balance of one zone."""

    output_kwh: DecimalStr
    consumption_kwh: DecimalStr
    delta_kwh: DecimalStr
    delta_ratio: DecimalStr | None
    delta_percent: DecimalStr | None
    severity: SeverityTier | None
    suspect: bool
    computed_at: UtcDatetime
    silent_meter_ids: list[str] = Field(default_factory=list)
    excluded_meter_ids: list[str] = Field(default_factory=list)


class ZoneEntryHTTP(BaseHTTPSchema):
    """Per-zone outcome inside a report."""

    zone_id: str
    zone_name: str
    status: ZoneRunStatus
    result: ReconciliationResultHTTP | None = None
    error_code: str | None = None
    error_message: str | None = None
    degraded_reasons: list[str] = Field(default_factory=list)
    ticket_action: TicketAction = TicketAction.NONE
    ticket_id: str | None = None
    meter_count: int = 0


class ReconciliationReportHTTP(BaseHTTPSchema):
    """Full reconciliation report, zones sorted by delta ratio descending."""

    run_id: str
    triggered_by: str
    status: RunStatus
    window_start: UtcDatetime
    window_end: UtcDatetime
    started_at: UtcDatetime
    completed_at: UtcDatetime | None = None
    failure_code: str | None = None
    failure_message: str | None = None
    zones_total: int
    zones_processed: int
    zones_flagged: int
    total_delta_kwh: DecimalStr
    orphaned_meter_ids: list[str] = Field(default_factory=list)
    zones: list[ZoneEntryHTTP] = Field(default_factory=list)


class RunAcceptedHTTP(BaseHTTPSchema):
    """Handle returned for asynchronous runs."""

    run_id: str
    status: RunStatus
    window_start: UtcDatetime
    window_end: UtcDatetime
    poll_url: str


class ZoneSummaryHTTP(BaseHTTPSchema):
    """Latest reconciliation outcome of one zone."""

    run_id: str
    run_completed_at: UtcDatetime | None
    window_start: UtcDatetime
    window_end: UtcDatetime
    zone: ZoneEntryHTTP


__all__ = [
    "ReconciliationReportHTTP",
    "ReconciliationResultHTTP",
    "RunAcceptedHTTP",
    "RunReconciliationRequestHTTP",
    "ZoneEntryHTTP",
    "ZoneSummaryHTTP",
]
