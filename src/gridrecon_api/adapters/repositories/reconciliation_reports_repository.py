# src/gridrecon_api/adapters/repositories/reconciliation_reports_repository.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reconciliation reports repository (SQLAlchemy).

Purpose:
    Persist reconciliation runs and their per-zone entries, and serve the
    history reads needed for sustained-watch detection and zone summaries.

Layer:
    adapters/repositories

Design:
    * A report is inserted RUNNING, then finalized once with all entries.
    * Entries are append-only and keep the report's sorted order in
      ``position``.
    * History reads rank entries per zone with ``ROW_NUMBER()`` ordered by
      the report's completion time, newest first. RUNNING reports are never
      part of history.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gridrecon_api.adapters.repositories.base_repository import BaseRepository
from gridrecon_api.domain.entities.reconciliation import (
    ReconciliationReport,
    ReconciliationResult,
    ZoneReconciliationEntry,
)
from gridrecon_api.domain.enums.reconciliation import (
    RunStatus,
    SeverityTier,
    TicketAction,
    ZoneRunStatus,
)
from gridrecon_api.domain.interfaces.repositories.reconciliation_reports_repository import (
    ReconciliationReportsRepository as ReconciliationReportsRepositoryPort,
)
from gridrecon_api.infrastructure.database.models.reconciliation import (
    ReconciliationReportRow,
    ReconciliationZoneEntryRow,
)

_RESULT_STATUSES = (ZoneRunStatus.OK, ZoneRunStatus.DEGRADED)


def _result_from_row(
    row: ReconciliationZoneEntryRow, window_start: datetime, window_end: datetime
) -> ReconciliationResult | None:
    if ZoneRunStatus(row.status) not in _RESULT_STATUSES or not row.has_result():
        return None
    output = Decimal(row.output_kwh or 0)
    consumption = Decimal(row.consumption_kwh or 0)
    # Delta is re-derived so the stored figures always balance after rounding.
    return ReconciliationResult(
        zone_id=row.zone_id,
        window_start=window_start,
        window_end=window_end,
        output_kwh=output,
        consumption_kwh=consumption,
        delta_kwh=output - consumption,
        delta_ratio=None if output == 0 else Decimal(row.delta_ratio or 0),
        computed_at=row.computed_at,  # type: ignore[arg-type]
        severity=SeverityTier(row.severity) if row.severity else None,
        suspect=bool(row.suspect),
        silent_meter_ids=tuple(row.silent_meter_ids or ()),
        excluded_meter_ids=tuple(row.excluded_meter_ids or ()),
    )


def _entry_from_row(
    row: ReconciliationZoneEntryRow, window_start: datetime, window_end: datetime
) -> ZoneReconciliationEntry:
    return ZoneReconciliationEntry(
        zone_id=row.zone_id,
        zone_name=row.zone_name,
        status=ZoneRunStatus(row.status),
        result=_result_from_row(row, window_start, window_end),
        error_code=row.error_code,
        error_message=row.error_message,
        degraded_reasons=tuple(row.degraded_reasons or ()),
        ticket_action=TicketAction(row.ticket_action),
        ticket_id=row.ticket_id,
        meter_count=row.meter_count or 0,
    )


def _entry_to_row(
    run_id: str, position: int, entry: ZoneReconciliationEntry
) -> ReconciliationZoneEntryRow:
    result = entry.result
    return ReconciliationZoneEntryRow(
        run_id=run_id,
        position=position,
        zone_id=entry.zone_id,
        zone_name=entry.zone_name,
        status=entry.status.value,
        error_code=entry.error_code,
        error_message=entry.error_message,
        degraded_reasons=list(entry.degraded_reasons),
        ticket_action=entry.ticket_action.value,
        ticket_id=entry.ticket_id,
        meter_count=entry.meter_count,
        output_kwh=result.output_kwh if result else None,
        consumption_kwh=result.consumption_kwh if result else None,
        delta_kwh=result.delta_kwh if result else None,
        delta_ratio=result.delta_ratio if result else None,
        computed_at=result.computed_at if result else None,
        severity=result.severity.value if result and result.severity else None,
        suspect=bool(result and result.suspect),
        silent_meter_ids=list(result.silent_meter_ids) if result else [],
        excluded_meter_ids=list(result.excluded_meter_ids) if result else [],
    )


def _report_from_row(
    row: ReconciliationReportRow, *, with_entries: bool = True
) -> ReconciliationReport:
    entries: tuple[ZoneReconciliationEntry, ...] = ()
    if with_entries:
        entries = tuple(
            _entry_from_row(e, row.window_start, row.window_end) for e in row.entries
        )
    return ReconciliationReport(
        run_id=row.run_id,
        triggered_by=row.triggered_by,
        window_start=row.window_start,
        window_end=row.window_end,
        status=RunStatus(row.status),
        started_at=row.started_at,
        completed_at=row.completed_at,
        entries=entries,
        failure_code=row.failure_code,
        failure_message=row.failure_message,
        orphaned_meter_ids=tuple(row.orphaned_meter_ids or ()),
    )


class SqlAlchemyReconciliationReportsRepository(
    BaseRepository[ReconciliationReportRow],
    ReconciliationReportsRepositoryPort,
):
    """SQLAlchemy-backed reconciliation report repository."""

    _MODEL_NAME = "reconciliation_reports"

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: Async SQLAlchemy session bound to the database.
        """
        super().__init__(session=session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_running(self, report: ReconciliationReport) -> None:
        async with self._instrumented("create_running"):
            self._session.add(
                ReconciliationReportRow(
                    run_id=report.run_id,
                    triggered_by=report.triggered_by,
                    window_start=report.window_start,
                    window_end=report.window_end,
                    status=report.status.value,
                    started_at=report.started_at,
                    completed_at=None,
                    orphaned_meter_ids=list(report.orphaned_meter_ids),
                )
            )
            await self._session.flush()

    async def save_final(self, report: ReconciliationReport) -> None:
        """Store final status and every entry of ``report``.

        Raises:
            ValueError: If ``report`` is still RUNNING.
        """
        if not report.is_final:
            raise ValueError("Only finalized reports can be saved.")

        async with self._instrumented("save_final"):
            await self._session.execute(
                update(ReconciliationReportRow)
                .where(ReconciliationReportRow.run_id == report.run_id)
                .values(
                    status=report.status.value,
                    completed_at=report.completed_at,
                    failure_code=report.failure_code,
                    failure_message=report.failure_message,
                    orphaned_meter_ids=list(report.orphaned_meter_ids),
                )
                .execution_options(synchronize_session=False)
            )
            self._session.add_all(
                [
                    _entry_to_row(report.run_id, position, entry)
                    for position, entry in enumerate(report.entries)
                ]
            )
            await self._session.flush()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, run_id: str) -> ReconciliationReport | None:
        async with self._instrumented("get"):
            stmt = (
                select(ReconciliationReportRow)
                .where(ReconciliationReportRow.run_id == run_id)
                .execution_options(populate_existing=True)
            )
            row = await self.fetch_optional(stmt)
            return _report_from_row(row) if row is not None else None

    @staticmethod
    def _ranked_entries(
        *,
        zone_ids: Collection[str] | None,
        exclude_run_id: str | None,
        per_zone: int,
    ) -> Select[Any]:
        """Select (entry, report) pairs ranked newest first within each zone."""
        report = ReconciliationReportRow
        entry = ReconciliationZoneEntryRow

        rank = (
            func.row_number()
            .over(
                partition_by=entry.zone_id,
                order_by=(report.completed_at.desc(), report.run_id.desc()),
            )
            .label("rank")
        )
        ranked = (
            select(entry.id.label("entry_id"), rank)
            .join(report, report.run_id == entry.run_id)
            .where(report.status != RunStatus.RUNNING.value)
        )
        if zone_ids is not None:
            ranked = ranked.where(entry.zone_id.in_(list(zone_ids)))
        if exclude_run_id is not None:
            ranked = ranked.where(report.run_id != exclude_run_id)
        sub = ranked.subquery()

        return (
            select(entry, report)
            .join(report, report.run_id == entry.run_id)
            .join(sub, sub.c.entry_id == entry.id)
            .where(sub.c.rank <= per_zone)
            .order_by(entry.zone_id.asc(), sub.c.rank.asc())
        )

    async def list_recent_entries(
        self,
        zone_ids: Collection[str],
        *,
        exclude_run_id: str | None = None,
        per_zone: int = 2,
    ) -> Mapping[str, Sequence[ZoneReconciliationEntry]]:
        if not zone_ids or per_zone <= 0:
            return {}

        async with self._instrumented("list_recent_entries"):
            stmt = self._ranked_entries(
                zone_ids=zone_ids, exclude_run_id=exclude_run_id, per_zone=per_zone
            )
            res = await self._session.execute(stmt)

            history: dict[str, list[ZoneReconciliationEntry]] = {}
            for entry_row, report_row in res.all():
                history.setdefault(entry_row.zone_id, []).append(
                    _entry_from_row(entry_row, report_row.window_start, report_row.window_end)
                )
            return history

    async def latest_entries_by_zone(
        self,
    ) -> Sequence[tuple[ReconciliationReport, ZoneReconciliationEntry]]:
        async with self._instrumented("latest_entries_by_zone"):
            stmt = self._ranked_entries(zone_ids=None, exclude_run_id=None, per_zone=1)
            res = await self._session.execute(stmt)
            return [
                (
                    _report_from_row(report_row, with_entries=False),
                    _entry_from_row(entry_row, report_row.window_start, report_row.window_end),
                )
                for entry_row, report_row in res.all()
            ]


__all__ = ["SqlAlchemyReconciliationReportsRepository"]
