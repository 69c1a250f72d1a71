# src/gridrecon_api/adapters/presenters/reconciliation_presenter.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Presenters for reconciliation HTTP responses.

Purpose:
    Transform reconciliation reports and zone summaries into stable HTTP
    response envelopes.

Layer:
    adapters/presenters
"""

from __future__ import annotations

from collections.abc import Sequence

from gridrecon_api.adapters.schemas.http.envelopes import SuccessEnvelope
from gridrecon_api.adapters.schemas.http.reconciliation_schemas import (
    ReconciliationReportHTTP,
    ReconciliationResultHTTP,
    RunAcceptedHTTP,
    ZoneEntryHTTP,
    ZoneSummaryHTTP,
)
from gridrecon_api.application.schemas.dto.reconciliation import ZoneReconciliationSummaryDTO
from gridrecon_api.domain.entities.reconciliation import (
    ReconciliationReport,
    ReconciliationResult,
    ZoneReconciliationEntry,
)


def _present_result(result: ReconciliationResult) -> ReconciliationResultHTTP:
    return ReconciliationResultHTTP(
        output_kwh=result.output_kwh,
        consumption_kwh=result.consumption_kwh,
        delta_kwh=result.delta_kwh,
        delta_ratio=result.delta_ratio,
        delta_percent=result.delta_percent,
        severity=result.severity,
        suspect=result.suspect,
        computed_at=result.computed_at,
        silent_meter_ids=list(result.silent_meter_ids),
        excluded_meter_ids=list(result.excluded_meter_ids),
    )


def present_zone_entry(entry: ZoneReconciliationEntry) -> ZoneEntryHTTP:
    """Present one per-zone outcome."""
    return ZoneEntryHTTP(
        zone_id=entry.zone_id,
        zone_name=entry.zone_name,
        status=entry.status,
        result=_present_result(entry.result) if entry.result is not None else None,
        error_code=entry.error_code,
        error_message=entry.error_message,
        degraded_reasons=list(entry.degraded_reasons),
        ticket_action=entry.ticket_action,
        ticket_id=entry.ticket_id,
        meter_count=entry.meter_count,
    )


def present_report(report: ReconciliationReport) -> SuccessEnvelope[ReconciliationReportHTTP]:
    """Present a report; zones keep the delta-descending order of the report.

    Args:
        report: Final or in-progress report.

    Returns:
        SuccessEnvelope containing a ReconciliationReportHTTP payload.
    """
    data = ReconciliationReportHTTP(
        run_id=report.run_id,
        triggered_by=report.triggered_by,
        status=report.status,
        window_start=report.window_start,
        window_end=report.window_end,
        started_at=report.started_at,
        completed_at=report.completed_at,
        failure_code=report.failure_code,
        failure_message=report.failure_message,
        zones_total=report.zones_total,
        zones_processed=report.zones_processed,
        zones_flagged=report.zones_flagged,
        total_delta_kwh=report.total_delta_kwh,
        orphaned_meter_ids=list(report.orphaned_meter_ids),
        zones=[present_zone_entry(e) for e in report.sorted_entries()],
    )
    return SuccessEnvelope(data=data)


def present_run_accepted(
    report: ReconciliationReport, *, poll_url: str
) -> SuccessEnvelope[RunAcceptedHTTP]:
    """Present the handle of an asynchronously executing run."""
    return SuccessEnvelope(
        data=RunAcceptedHTTP(
            run_id=report.run_id,
            status=report.status,
            window_start=report.window_start,
            window_end=report.window_end,
            poll_url=poll_url,
        )
    )


def present_zone_summaries(
    summaries: Sequence[ZoneReconciliationSummaryDTO],
) -> SuccessEnvelope[list[ZoneSummaryHTTP]]:
    """Present latest per-zone summaries in the order given."""
    items = [
        ZoneSummaryHTTP(
            run_id=s.run_id,
            run_completed_at=s.run_completed_at,
            window_start=s.window_start,
            window_end=s.window_end,
            zone=present_zone_entry(s.entry),
        )
        for s in summaries
    ]
    return SuccessEnvelope(data=items)


__all__ = [
    "present_report",
    "present_run_accepted",
    "present_zone_entry",
    "present_zone_summaries",
]
