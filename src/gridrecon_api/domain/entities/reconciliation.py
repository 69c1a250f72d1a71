# src/gridrecon_api/domain/entities/reconciliation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reconciliation results and reports.

Purpose:
    Represent the energy balance of one zone over one window
    (:class:`ReconciliationResult`), the per-zone outcome of a run
    (:class:`ZoneReconciliationEntry`) and the run itself
    (:class:`ReconciliationReport`).

Layer:
    domain

Notes:
    - Results are never mutated; recomputation produces a new value.
    - ``delta_ratio`` is kept as an exact Decimal fraction. Percentages are a
      display concern and only appear through ``delta_percent``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from gridrecon_api.domain.enums.reconciliation import (
    RunStatus,
    SeverityTier,
    TicketAction,
    ZoneRunStatus,
)

_HUNDRED = Decimal(100)


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """Energy balance of one zone over one window.

    Attributes:
        zone_id: Zone the balance was computed for.
        window_start: Inclusive window start.
        window_end: Exclusive window end.
        output_kwh: Energy delivered by the zone's substations.
        consumption_kwh: Energy reported by the zone's member meters.
        delta_kwh: ``output_kwh - consumption_kwh``.
        delta_ratio: ``delta_kwh / output_kwh``; ``None`` when output is zero.
        computed_at: Computation timestamp.
        severity: Severity tier; ``None`` until the classifier has run.
        suspect: Whether the zone-window warrants a human audit.
        silent_meter_ids: Member meters with no reading in the window.
        excluded_meter_ids: Member meters left out because of topology conflicts.
    """

    zone_id: str
    window_start: datetime
    window_end: datetime
    output_kwh: Decimal
    consumption_kwh: Decimal
    delta_kwh: Decimal
    delta_ratio: Decimal | None
    computed_at: datetime
    severity: SeverityTier | None = None
    suspect: bool = False
    silent_meter_ids: tuple[str, ...] = ()
    excluded_meter_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Enforce invariants."""
        if self.window_end <= self.window_start:
            raise ValueError("window_end must be after window_start.")
        if self.delta_kwh != self.output_kwh - self.consumption_kwh:
            raise ValueError("Invariant violation: delta must equal output - consumption.")
        if (self.output_kwh == 0) != (self.delta_ratio is None):
            raise ValueError("delta_ratio must be None exactly when output is zero.")

    @property
    def is_classified(self) -> bool:
        """Return True once a severity tier has been assigned."""
        return self.severity is not None

    @property
    def delta_percent(self) -> Decimal | None:
        """Return the delta ratio expressed as a percentage (display only)."""
        if self.delta_ratio is None:
            return None
        return self.delta_ratio * _HUNDRED

    def with_classification(self, severity: SeverityTier, suspect: bool) -> ReconciliationResult:
        """Return a copy carrying the given classification."""
        return replace(self, severity=severity, suspect=suspect)

    def fingerprint(self) -> tuple[Any, ...]:
        """Return every field except ``computed_at`` for reproducibility checks."""
        return (
            self.zone_id,
            self.window_start,
            self.window_end,
            self.output_kwh,
            self.consumption_kwh,
            self.delta_kwh,
            self.delta_ratio,
            self.severity,
            self.suspect,
            self.silent_meter_ids,
            self.excluded_meter_ids,
        )


@dataclass(frozen=True, slots=True)
class ZoneReconciliationEntry:
    """Tagged per-zone outcome of a reconciliation run.

    Attributes:
        zone_id: Zone identifier.
        zone_name: Zone display name at run time.
        status: Outcome status.
        result: Balance, when one could be computed.
        error_code: Stable error code explaining an incomplete outcome.
        error_message: Human-readable explanation.
        degraded_reasons: Topology issues that lowered accuracy.
        ticket_action: What happened to the zone's audit ticket.
        ticket_id: Ticket created or linked, if any.
        meter_count: Member meters the zone had when the run enumerated it.
    """

    zone_id: str
    zone_name: str
    status: ZoneRunStatus
    result: ReconciliationResult | None = None
    error_code: str | None = None
    error_message: str | None = None
    degraded_reasons: tuple[str, ...] = ()
    ticket_action: TicketAction = TicketAction.NONE
    ticket_id: str | None = None
    meter_count: int = 0

    def __post_init__(self) -> None:
        """Enforce invariants."""
        has_result = self.result is not None
        if self.status in (ZoneRunStatus.OK, ZoneRunStatus.DEGRADED) and not has_result:
            raise ValueError(f"{self.status.value} entries must carry a result.")
        if self.status in (ZoneRunStatus.INCOMPLETE, ZoneRunStatus.NOT_PROCESSED) and has_result:
            raise ValueError(f"{self.status.value} entries must not carry a result.")
        if self.meter_count < 0:
            raise ValueError("meter_count must be >= 0.")

    @property
    def suspect(self) -> bool:
        """Return True when the zone's result was flagged for audit."""
        return self.result is not None and self.result.suspect

    @property
    def delta_ratio(self) -> Decimal | None:
        """Return the result's delta ratio, if any."""
        return self.result.delta_ratio if self.result is not None else None


def _descending_ratio_key(entry: ZoneReconciliationEntry) -> tuple[bool, Decimal]:
    ratio = entry.delta_ratio
    return (ratio is None, -ratio if ratio is not None else Decimal(0))


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    """One reconciliation run over all zones.

    A report in ``RUNNING`` status is the transient in-progress state. Once
    ``COMPLETED`` or ``FAILED`` it is never modified again.

    Attributes:
        run_id: Run identifier.
        triggered_by: Operator id, ``scheduler`` or another caller label.
        window_start: Inclusive window start.
        window_end: Exclusive window end.
        status: Run lifecycle status.
        started_at: When the run began.
        completed_at: When the run was finalized.
        entries: One entry per enumerated zone, in enumeration order.
        failure_code: Run-level failure code (``FAILED`` runs only).
        failure_message: Run-level failure explanation.
        orphaned_meter_ids: Registered meters that belong to no zone.
    """

    run_id: str
    triggered_by: str
    window_start: datetime
    window_end: datetime
    status: RunStatus
    started_at: datetime
    completed_at: datetime | None = None
    entries: tuple[ZoneReconciliationEntry, ...] = ()
    failure_code: str | None = None
    failure_message: str | None = None
    orphaned_meter_ids: tuple[str, ...] = ()

    @property
    def is_final(self) -> bool:
        """Return True once the report can no longer change."""
        return self.status is not RunStatus.RUNNING

    @property
    def zones_total(self) -> int:
        """Return the number of zones enumerated by the run."""
        return len(self.entries)

    @property
    def zones_processed(self) -> int:
        """Return the number of zones that produced a balance."""
        return sum(1 for e in self.entries if e.result is not None)

    @property
    def zones_flagged(self) -> int:
        """Return the number of zones flagged as suspect."""
        return sum(1 for e in self.entries if e.suspect)

    @property
    def total_delta_kwh(self) -> Decimal:
        """Return the summed delta across processed zones."""
        return sum(
            (e.result.delta_kwh for e in self.entries if e.result is not None),
            start=Decimal(0),
        )

    def count_by_status(self) -> dict[ZoneRunStatus, int]:
        """Return the number of entries per zone status."""
        counts = dict.fromkeys(ZoneRunStatus, 0)
        for entry in self.entries:
            counts[entry.status] += 1
        return counts

    def sorted_entries(self) -> tuple[ZoneReconciliationEntry, ...]:
        """Return entries by descending delta ratio.

        Entries without a ratio (incomplete, not processed, zero output) come
        last. The sort is stable, so ties keep enumeration order.
        """
        return tuple(sorted(self.entries, key=_descending_ratio_key))

    def entry_for(self, zone_id: str) -> ZoneReconciliationEntry | None:
        """Return the entry for ``zone_id``, if the run enumerated it."""
        for entry in self.entries:
            if entry.zone_id == zone_id:
                return entry
        return None

    def finalized(
        self,
        *,
        status: RunStatus,
        completed_at: datetime,
        entries: Iterable[ZoneReconciliationEntry],
        failure_code: str | None = None,
        failure_message: str | None = None,
        orphaned_meter_ids: Iterable[str] = (),
    ) -> ReconciliationReport:
        """Return the final form of a running report.

        Raises:
            ValueError: If the report is already final or ``status`` is RUNNING.
        """
        if self.is_final:
            raise ValueError(f"Report {self.run_id} is already final.")
        if status is RunStatus.RUNNING:
            raise ValueError("A report cannot be finalized as RUNNING.")
        return replace(
            self,
            status=status,
            completed_at=completed_at,
            entries=tuple(entries),
            failure_code=failure_code,
            failure_message=failure_message,
            orphaned_meter_ids=tuple(sorted(set(orphaned_meter_ids))),
        )
