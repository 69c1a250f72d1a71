# src/gridrecon_api/application/schemas/dto/reconciliation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Application DTOs for reconciliation use cases.

Layer:
    application/schemas/dto
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from gridrecon_api.domain.entities.reconciliation import (
    ReconciliationReport,
    ZoneReconciliationEntry,
)


@dataclass(frozen=True, slots=True)
class RunReconciliationRequestDTO:
    """Input for a reconciliation run.

    Attributes:
        window_start: Inclusive window start; both bounds or neither.
        window_end: Exclusive window end.
        triggered_by: Caller label recorded on the report.
        deadline_s: Seconds the caller is willing to wait; ``None`` uses the
            configured default, ``0`` disables the deadline.
    """

    window_start: datetime | None = None
    window_end: datetime | None = None
    triggered_by: str = "operator"
    deadline_s: float | None = None


@dataclass(frozen=True, slots=True)
class ZoneReconciliationSummaryDTO:
    """Latest known reconciliation outcome for one zone."""

    run_id: str
    run_completed_at: datetime | None
    window_start: datetime
    window_end: datetime
    entry: ZoneReconciliationEntry

    @classmethod
    def from_report(
        cls, report: ReconciliationReport, entry: ZoneReconciliationEntry
    ) -> ZoneReconciliationSummaryDTO:
        """Build a summary from a report and one of its entries."""
        return cls(
            run_id=report.run_id,
            run_completed_at=report.completed_at,
            window_start=report.window_start,
            window_end=report.window_end,
            entry=entry,
        )
