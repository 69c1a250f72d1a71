# src/gridrecon_api/application/use_cases/reconciliation/get_zones_reconciliation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Use case: latest reconciliation outcome for every zone.

Purpose:
    Back the zones dashboard: one row per zone ever reconciled, taken from
    the most recent finished run that enumerated it, ordered by descending
    delta percentage (zones without a ratio last).

Layer:
    application/use_cases/reconciliation
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any, cast

from gridrecon_api.application.schemas.dto.reconciliation import ZoneReconciliationSummaryDTO
from gridrecon_api.application.uow import UnitOfWorkFactory
from gridrecon_api.domain.interfaces.repositories.reconciliation_reports_repository import (
    ReconciliationReportsRepository as ReconciliationReportsRepositoryPort,
)


def _sort_key(summary: ZoneReconciliationSummaryDTO) -> tuple[bool, Decimal, str]:
    ratio = summary.entry.delta_ratio
    return (ratio is None, -ratio if ratio is not None else Decimal(0), summary.entry.zone_id)


class GetZonesReconciliationUseCase:
    """List the latest per-zone summaries."""

    def __init__(self, *, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    async def execute(
        self, *, suspect_only: bool = False
    ) -> Sequence[ZoneReconciliationSummaryDTO]:
        """Return one summary per zone.

        Args:
            suspect_only: Keep only zones whose latest result is suspect.
        """
        async with self._uow_factory() as tx:
            rows = await _get_repo(tx).latest_entries_by_zone()

        summaries = [
            ZoneReconciliationSummaryDTO.from_report(report, entry) for report, entry in rows
        ]
        if suspect_only:
            summaries = [s for s in summaries if s.entry.suspect]
        summaries.sort(key=_sort_key)
        return summaries


def _get_repo(tx: Any) -> ReconciliationReportsRepositoryPort:
    """Resolve the reports repository from a UnitOfWork/transaction."""
    if hasattr(tx, "reconciliation_reports_repo"):
        return cast(ReconciliationReportsRepositoryPort, tx.reconciliation_reports_repo)
    repo_any = tx.get_repository(ReconciliationReportsRepositoryPort)
    return cast(ReconciliationReportsRepositoryPort, repo_any)
