# src/gridrecon_api/domain/interfaces/repositories/reconciliation_reports_repository.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reconciliation reports repository interface.

Purpose:
    Durable storage for reconciliation runs. Results are stored only as
    children of their report, preserving lineage from readings to tickets.

Layer:
    domain/interfaces/repositories
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from typing import Protocol

from gridrecon_api.domain.entities.reconciliation import (
    ReconciliationReport,
    ZoneReconciliationEntry,
)


class ReconciliationReportsRepository(Protocol):
    """Protocol for reconciliation report persistence."""

    async def create_running(self, report: ReconciliationReport) -> None:
        """Insert a report in RUNNING status (no entries yet)."""
        ...

    async def save_final(self, report: ReconciliationReport) -> None:
        """Store the final status, metadata and every zone entry of a report.

        Raises:
            ValueError: If ``report`` is still RUNNING.
        """
        ...

    async def get(self, run_id: str) -> ReconciliationReport | None:
        """Return a report with its entries, or ``None``."""
        ...

    async def list_recent_entries(
        self,
        zone_ids: Collection[str],
        *,
        exclude_run_id: str | None = None,
        per_zone: int = 2,
    ) -> Mapping[str, Sequence[ZoneReconciliationEntry]]:
        """Return each zone's latest entries from finished runs, newest first.

        Args:
            zone_ids: Zones of interest.
            exclude_run_id: Run to ignore (typically the one in progress).
            per_zone: Maximum number of entries returned per zone.
        """
        ...

    async def latest_entries_by_zone(
        self,
    ) -> Sequence[tuple[ReconciliationReport, ZoneReconciliationEntry]]:
        """Return, for every zone ever reconciled, its most recent entry with its report."""
        ...
