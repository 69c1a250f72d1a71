# src/gridrecon_api/application/use_cases/reconciliation/get_reconciliation_report.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Use case: fetch one reconciliation report by run id.

Used to poll runs started asynchronously.

Layer:
    application/use_cases/reconciliation
"""

from __future__ import annotations

from typing import Any, cast

from gridrecon_api.application.uow import UnitOfWorkFactory
from gridrecon_api.domain.entities.reconciliation import ReconciliationReport
from gridrecon_api.domain.exceptions.reconciliation import ReportNotFoundError
from gridrecon_api.domain.interfaces.repositories.reconciliation_reports_repository import (
    ReconciliationReportsRepository as ReconciliationReportsRepositoryPort,
)


class GetReconciliationReportUseCase:
    """Return a stored report, RUNNING or final."""

    def __init__(self, *, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    async def execute(self, run_id: str) -> ReconciliationReport:
        """Return the report for ``run_id``.

        Raises:
            ReportNotFoundError: If no run has that id.
        """
        async with self._uow_factory() as tx:
            report = await _get_repo(tx).get(run_id)
        if report is None:
            raise ReportNotFoundError(
                f"Reconciliation run {run_id!r} not found.", details={"run_id": run_id}
            )
        return report


def _get_repo(tx: Any) -> ReconciliationReportsRepositoryPort:
    """Resolve the reports repository from a UnitOfWork/transaction."""
    if hasattr(tx, "reconciliation_reports_repo"):
        return cast(ReconciliationReportsRepositoryPort, tx.reconciliation_reports_repo)
    repo_any = tx.get_repository(ReconciliationReportsRepositoryPort)
    return cast(ReconciliationReportsRepositoryPort, repo_any)
