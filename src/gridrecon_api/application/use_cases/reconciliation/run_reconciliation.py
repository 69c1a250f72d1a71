# src/gridrecon_api/application/use_cases/reconciliation/run_reconciliation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Use case: run an energy reconciliation over every zone.

Purpose:
    Fan the delta calculation out across zones with bounded concurrency,
    classify each result against the zone's recent history, open or link
    audit tickets for suspect zones and persist a single report for the run.

Behavior:
    - Each zone is an independent unit of work returning a tagged outcome.
      A failure in one zone never aborts the batch.
    - Topology inconsistencies exclude the offending meters and mark the
      affected zones ``degraded``.
    - When the run deadline expires the report is finalized with the zones
      completed so far. Zones whose work had not started are cancelled; work
      already dispatched is left to finish and its late result is discarded.
    - Audit tickets are opened or linked only for zones that completed
      within the deadline, so every ticket's evidence points at a zone the
      report actually carries.
    - A run where every zone hit a substation data gap fails as a systemic
      feed outage. Storage failures fail the run while preserving the
      results computed so far.
    - Without zone history the sustained watch-tier rule cannot be applied.
      The run fails with ``STORAGE_ERROR`` and watch-tier zones are marked
      ``degraded``.
    - The use case always returns a report, even when the run fails.

Layer:
    application/use_cases/reconciliation
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from gridrecon_api.application.schemas.dto.reconciliation import RunReconciliationRequestDTO
from gridrecon_api.application.services.audit_ticket_manager import AuditTicketManager
from gridrecon_api.application.services.delta_calculator import DeltaCalculator
from gridrecon_api.application.uow import UnitOfWork, UnitOfWorkFactory
from gridrecon_api.domain.entities.reconciliation import (
    ReconciliationReport,
    ReconciliationResult,
    ZoneReconciliationEntry,
)
from gridrecon_api.domain.entities.zone import Zone
from gridrecon_api.domain.enums.reconciliation import (
    RunStatus,
    SeverityTier,
    TicketAction,
    ZoneRunStatus,
)
from gridrecon_api.domain.exceptions.audit_ticket import ConcurrentTicketConflictError
from gridrecon_api.domain.exceptions.base import DomainError
from gridrecon_api.domain.exceptions.reconciliation import (
    DataGapError,
    InvalidWindowError,
    ReadingStoreUnavailableError,
)
from gridrecon_api.domain.interfaces.gateways.topology_provider import TopologyProvider
from gridrecon_api.domain.interfaces.repositories.reconciliation_reports_repository import (
    ReconciliationReportsRepository,
)
from gridrecon_api.domain.services.anomaly_classifier import AnomalyClassifier
from gridrecon_api.domain.services.billing_calendar import BillingCalendar
from gridrecon_api.domain.services.energy_balance import validate_window
from gridrecon_api.domain.services.topology_validation import TopologyAudit, audit_topology

logger = logging.getLogger(__name__)

SYSTEMIC_FEED_OUTAGE = "SYSTEMIC_FEED_OUTAGE"
STORAGE_ERROR = "STORAGE_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"
DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
HISTORY_UNAVAILABLE = "Zone history unavailable; sustained watch-tier loss not assessed."

# Strong references to dispatched zone work that outlived its run deadline.
_LATE_TASKS: set[asyncio.Task[Any]] = set()


@dataclass(frozen=True, slots=True)
class RunPolicy:
    """Execution parameters for reconciliation runs.

    Attributes:
        max_workers: Maximum zones processed concurrently.
        deadline_s: Default run deadline in seconds; ``None`` disables it.
        ticket_link_retries: Attempts at the ticket step before giving up.
        ticket_retry_backoff_s: Base pause between ticket attempts.
    """

    max_workers: int = 8
    deadline_s: float | None = 300.0
    ticket_link_retries: int = 3
    ticket_retry_backoff_s: float = 0.05

    def __post_init__(self) -> None:
        """Enforce invariants."""
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1.")
        if self.ticket_link_retries < 1:
            raise ValueError("ticket_link_retries must be >= 1.")


@dataclass(frozen=True, slots=True)
class RunContext:
    """A started run: its RUNNING report and effective deadline."""

    report: ReconciliationReport
    deadline_s: float | None

    @property
    def run_id(self) -> str:
        """Return the run identifier."""
        return self.report.run_id


@dataclass(frozen=True, slots=True)
class ZoneOutcome:
    """Tagged result of one zone's unit of work.

    ``failure`` is ``None`` on success, otherwise the error code that made
    the zone incomplete.
    """

    entry: ZoneReconciliationEntry
    failure: str | None = None

    @property
    def is_data_gap(self) -> bool:
        """True when the zone failed on a substation data gap."""
        return self.failure == DataGapError.code

    @property
    def is_storage_failure(self) -> bool:
        """True when the zone failed on the reading store."""
        return self.failure == STORAGE_ERROR


def _reports_repo(tx: UnitOfWork) -> ReconciliationReportsRepository:
    repo = getattr(tx, "reconciliation_reports_repo", None)
    if repo is not None:
        return repo  # type: ignore[no-any-return]
    return tx.get_repository(ReconciliationReportsRepository)  # type: ignore[no-any-return]


def _prior_results(entries: Sequence[ZoneReconciliationEntry]) -> list[ReconciliationResult]:
    """Return the leading run of prior results; an entry without one ends the streak."""
    results: list[ReconciliationResult] = []
    for entry in entries:
        if entry.result is None:
            break
        results.append(entry.result)
    return results


def _on_late_task_done(task: asyncio.Task[Any]) -> None:
    _LATE_TASKS.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "reconciliation.zone.late_failure",
            extra={"task": task.get_name(), "error_type": type(exc).__name__},
        )
        return
    outcome = task.result()
    logger.info(
        "reconciliation.zone.late_result_discarded",
        extra={"zone_id": outcome.entry.zone_id, "status": outcome.entry.status.value},
    )


class RunReconciliationUseCase:
    """Orchestrate a reconciliation run across all zones.

    Args:
        topology: Source of zones and registered meters.
        delta_calculator: Computes unclassified zone results.
        classifier: Assigns severity tiers and suspect flags.
        ticket_manager: Opens or links audit tickets for suspect zones.
        uow_factory: Returns a fresh UnitOfWork per transaction.
        calendar: Billing calendar supplying the default window.
        policy: Concurrency, deadline and retry parameters.
        clock: Injectable UTC clock.
    """

    def __init__(
        self,
        *,
        topology: TopologyProvider,
        delta_calculator: DeltaCalculator,
        classifier: AnomalyClassifier,
        ticket_manager: AuditTicketManager,
        uow_factory: UnitOfWorkFactory,
        calendar: BillingCalendar | None = None,
        policy: RunPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._topology = topology
        self._delta = delta_calculator
        self._classifier = classifier
        self._tickets = ticket_manager
        self._uow_factory = uow_factory
        self._calendar = calendar or BillingCalendar()
        self._policy = policy or RunPolicy()
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, req: RunReconciliationRequestDTO) -> ReconciliationReport:
        """Start a run and execute it to completion."""
        ctx = await self.begin(req)
        return await self.execute(ctx)

    async def begin(self, req: RunReconciliationRequestDTO) -> RunContext:
        """Resolve the window and persist a RUNNING report.

        Raises:
            InvalidWindowError: If only one bound is given or the window is
                empty or reversed.
        """
        now = self._clock()
        if req.window_start is None and req.window_end is None:
            window_start, window_end = self._calendar.last_completed_interval(now)
        elif req.window_start is None or req.window_end is None:
            raise InvalidWindowError("window_start and window_end must be given together.")
        else:
            window_start, window_end = req.window_start, req.window_end
        validate_window(window_start, window_end)

        deadline_s = self._policy.deadline_s if req.deadline_s is None else req.deadline_s
        report = ReconciliationReport(
            run_id=str(uuid4()),
            triggered_by=req.triggered_by,
            window_start=window_start,
            window_end=window_end,
            status=RunStatus.RUNNING,
            started_at=now,
        )
        async with self._uow_factory() as tx:
            await _reports_repo(tx).create_running(report)
            await tx.commit()

        logger.info(
            "reconciliation.run.start",
            extra={
                "run_id": report.run_id,
                "triggered_by": report.triggered_by,
                "window_start": window_start.isoformat(),
                "window_end": window_end.isoformat(),
                "deadline_s": deadline_s,
            },
        )
        return RunContext(report=report, deadline_s=deadline_s or None)

    async def execute(self, ctx: RunContext) -> ReconciliationReport:
        """Process every zone and persist the final report.

        Never raises for zone-level or storage failures; those are reflected
        in the returned report.
        """
        started = time.monotonic()
        try:
            zones = list(await self._topology.list_zones())
            registered = await self._topology.list_registered_meter_ids()
        except Exception as exc:
            code = (
                STORAGE_ERROR if isinstance(exc, ReadingStoreUnavailableError) else INTERNAL_ERROR
            )
            logger.exception("reconciliation.run.topology_failed", extra={"run_id": ctx.run_id})
            return await self._finalize(
                ctx, [], status=RunStatus.FAILED, failure_code=code, failure_message=str(exc)
            )

        audit = audit_topology(zones, registered)
        for issue in audit.issues:
            logger.warning(
                "reconciliation.topology.inconsistent",
                extra={
                    "run_id": ctx.run_id,
                    "meter_id": issue.meter_id,
                    "zone_ids": issue.zone_ids,
                },
            )

        history = await self._load_history(ctx, zones)
        outcomes = await self._fan_out(ctx, zones, audit, history, started)

        entries = [outcomes[z.zone_id].entry for z in zones]
        status, failure_code, failure_message = self._run_status(
            zones, outcomes, history_available=history is not None
        )
        report = await self._finalize(
            ctx,
            entries,
            status=status,
            failure_code=failure_code,
            failure_message=failure_message,
            orphaned_meter_ids=audit.orphaned_meter_ids,
        )
        logger.info(
            "reconciliation.run.complete",
            extra={
                "run_id": report.run_id,
                "status": report.status.value,
                "failure_code": report.failure_code,
                "zones_total": report.zones_total,
                "zones_processed": report.zones_processed,
                "zones_flagged": report.zones_flagged,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_history(
        self, ctx: RunContext, zones: Sequence[Zone]
    ) -> Mapping[str, Sequence[ZoneReconciliationEntry]] | None:
        """Fetch every zone's recent entries in a single batch.

        Returns ``None`` when the history cannot be read.
        """
        if not zones:
            return {}
        try:
            async with self._uow_factory() as tx:
                return await _reports_repo(tx).list_recent_entries(
                    [z.zone_id for z in zones],
                    exclude_run_id=ctx.run_id,
                    per_zone=self._classifier.thresholds.sustained_watch_runs,
                )
        except Exception:
            logger.exception(
                "reconciliation.run.history_unavailable", extra={"run_id": ctx.run_id}
            )
            return None

    async def _fan_out(
        self,
        ctx: RunContext,
        zones: Sequence[Zone],
        audit: TopologyAudit,
        history: Mapping[str, Sequence[ZoneReconciliationEntry]] | None,
        started: float,
    ) -> dict[str, ZoneOutcome]:
        """Run zone work with bounded concurrency until done or out of time.

        Suspect zones that completed in time then go through the ticket step.
        """
        semaphore = asyncio.Semaphore(self._policy.max_workers)
        dispatched: set[str] = set()

        async def guarded(zone: Zone) -> ZoneOutcome:
            async with semaphore:
                dispatched.add(zone.zone_id)
                prior = None if history is None else history.get(zone.zone_id, ())
                return await self._process_zone(ctx, zone, audit, prior)

        tasks = {
            asyncio.create_task(guarded(z), name=f"recon-zone-{z.zone_id}"): z for z in zones
        }
        outcomes: dict[str, ZoneOutcome] = {}
        if not tasks:
            return outcomes

        timeout = None
        if ctx.deadline_s is not None:
            timeout = max(0.0, ctx.deadline_s - (time.monotonic() - started))
        done, pending = await asyncio.wait(tasks, timeout=timeout)

        suspects: list[tuple[Zone, ReconciliationResult]] = []
        for task in done:
            zone = tasks[task]
            outcomes[zone.zone_id] = task.result()
            result = outcomes[zone.zone_id].entry.result
            if result is not None and result.suspect:
                suspects.append((zone, result))

        for task in pending:
            zone = tasks[task]
            if zone.zone_id in dispatched:
                _LATE_TASKS.add(task)
                task.add_done_callback(_on_late_task_done)
            else:
                task.cancel()
            outcomes[zone.zone_id] = ZoneOutcome(
                entry=ZoneReconciliationEntry(
                    zone_id=zone.zone_id,
                    zone_name=zone.name,
                    status=ZoneRunStatus.NOT_PROCESSED,
                    error_code=DEADLINE_EXCEEDED,
                    error_message="Run deadline reached before the zone completed.",
                    degraded_reasons=audit.reasons_for(zone.zone_id),
                    meter_count=zone.meter_count,
                ),
                failure=DEADLINE_EXCEEDED,
            )

        if pending:
            logger.warning(
                "reconciliation.run.deadline_exceeded",
                extra={
                    "run_id": ctx.run_id,
                    "zones_pending": len(pending),
                    "zones_still_running": sum(1 for t in pending if not t.cancelled()),
                },
            )

        ticket_slots = asyncio.Semaphore(self._policy.max_workers)

        async def ticketed(zone: Zone, result: ReconciliationResult) -> None:
            async with ticket_slots:
                action, ticket_id = await self._ticket_step(ctx, zone, result)
            entry = outcomes[zone.zone_id].entry
            outcomes[zone.zone_id] = ZoneOutcome(
                entry=replace(entry, ticket_action=action, ticket_id=ticket_id)
            )

        await asyncio.gather(*(ticketed(zone, result) for zone, result in suspects))
        return outcomes

    async def _process_zone(
        self,
        ctx: RunContext,
        zone: Zone,
        audit: TopologyAudit,
        history: Sequence[ZoneReconciliationEntry] | None,
    ) -> ZoneOutcome:
        """Compute and classify a single zone.

        ``history`` is ``None`` when the zone's prior entries could not be read.
        """
        reasons = audit.reasons_for(zone.zone_id)
        excluded = [m for m in zone.meter_ids if m in audit.excluded_meter_ids]
        report = ctx.report
        try:
            raw = await self._delta.compute_delta(
                zone, report.window_start, report.window_end, excluded_meter_ids=excluded
            )
        except ReadingStoreUnavailableError as exc:
            logger.warning(
                "reconciliation.zone.storage_error",
                extra={"run_id": ctx.run_id, "zone_id": zone.zone_id, "error": str(exc)},
            )
            return self._incomplete(zone, STORAGE_ERROR, str(exc), reasons)
        except DomainError as exc:
            logger.info(
                "reconciliation.zone.incomplete",
                extra={
                    "run_id": ctx.run_id,
                    "zone_id": zone.zone_id,
                    "code": exc.code,
                    "details": dict(exc.details),
                },
            )
            return self._incomplete(zone, exc.code, exc.message, reasons)
        except Exception as exc:
            logger.exception(
                "reconciliation.zone.unhandled",
                extra={"run_id": ctx.run_id, "zone_id": zone.zone_id},
            )
            return self._incomplete(zone, INTERNAL_ERROR, str(exc), reasons)

        result = self._classifier.apply(raw, _prior_results(history or ()))
        if history is None and result.severity is SeverityTier.WATCH:
            reasons = (*reasons, HISTORY_UNAVAILABLE)

        return ZoneOutcome(
            entry=ZoneReconciliationEntry(
                zone_id=zone.zone_id,
                zone_name=zone.name,
                status=ZoneRunStatus.DEGRADED if reasons else ZoneRunStatus.OK,
                result=result,
                degraded_reasons=reasons,
                meter_count=zone.meter_count,
            )
        )

    async def _ticket_step(
        self, ctx: RunContext, zone: Zone, result: ReconciliationResult
    ) -> tuple[TicketAction, str | None]:
        """Open or link a ticket, retrying lock conflicts a bounded number of times."""
        attempts = self._policy.ticket_link_retries
        for attempt in range(1, attempts + 1):
            try:
                outcome = await self._tickets.create_or_update_ticket(
                    zone, result, run_id=ctx.run_id
                )
            except ConcurrentTicketConflictError:
                logger.info(
                    "reconciliation.ticket.conflict",
                    extra={"run_id": ctx.run_id, "zone_id": zone.zone_id, "attempt": attempt},
                )
                if attempt < attempts:
                    await asyncio.sleep(self._policy.ticket_retry_backoff_s * attempt)
                continue
            except Exception:
                logger.exception(
                    "reconciliation.ticket.failed",
                    extra={"run_id": ctx.run_id, "zone_id": zone.zone_id},
                )
                return TicketAction.FAILED, None
            return outcome.action, outcome.ticket.ticket_id

        logger.warning(
            "reconciliation.ticket.gave_up",
            extra={"run_id": ctx.run_id, "zone_id": zone.zone_id, "attempts": attempts},
        )
        return TicketAction.FAILED, None

    @staticmethod
    def _incomplete(
        zone: Zone, code: str, message: str, reasons: tuple[str, ...]
    ) -> ZoneOutcome:
        return ZoneOutcome(
            entry=ZoneReconciliationEntry(
                zone_id=zone.zone_id,
                zone_name=zone.name,
                status=ZoneRunStatus.INCOMPLETE,
                error_code=code,
                error_message=message,
                degraded_reasons=reasons,
                meter_count=zone.meter_count,
            ),
            failure=code,
        )

    @staticmethod
    def _run_status(
        zones: Sequence[Zone],
        outcomes: Mapping[str, ZoneOutcome],
        *,
        history_available: bool = True,
    ) -> tuple[RunStatus, str | None, str | None]:
        values = [outcomes[z.zone_id] for z in zones]
        storage = [o for o in values if o.is_storage_failure]
        if storage:
            return (
                RunStatus.FAILED,
                STORAGE_ERROR,
                f"Reading store unavailable for {len(storage)} zone(s); partial results kept.",
            )
        if not history_available:
            return (
                RunStatus.FAILED,
                STORAGE_ERROR,
                "Zone history unavailable; sustained watch-tier loss could not be assessed.",
            )
        if values and all(o.is_data_gap for o in values):
            return (
                RunStatus.FAILED,
                SYSTEMIC_FEED_OUTAGE,
                "Every zone is missing substation data; the feed is likely down.",
            )
        return RunStatus.COMPLETED, None, None

    async def _finalize(
        self,
        ctx: RunContext,
        entries: Sequence[ZoneReconciliationEntry],
        *,
        status: RunStatus,
        failure_code: str | None = None,
        failure_message: str | None = None,
        orphaned_meter_ids: Sequence[str] | frozenset[str] = (),
    ) -> ReconciliationReport:
        report = ctx.report.finalized(
            status=status,
            completed_at=self._clock(),
            entries=entries,
            failure_code=failure_code,
            failure_message=failure_message,
            orphaned_meter_ids=orphaned_meter_ids,
        )
        try:
            async with self._uow_factory() as tx:
                await _reports_repo(tx).save_final(report)
                await tx.commit()
        except Exception as exc:
            logger.exception("reconciliation.run.persist_failed", extra={"run_id": ctx.run_id})
            return ctx.report.finalized(
                status=RunStatus.FAILED,
                completed_at=report.completed_at or self._clock(),
                entries=entries,
                failure_code=STORAGE_ERROR,
                failure_message=f"Report could not be persisted: {exc}",
                orphaned_meter_ids=orphaned_meter_ids,
            )
        return report


__all__ = [
    "DEADLINE_EXCEEDED",
    "HISTORY_UNAVAILABLE",
    "INTERNAL_ERROR",
    "STORAGE_ERROR",
    "SYSTEMIC_FEED_OUTAGE",
    "RunContext",
    "RunPolicy",
    "RunReconciliationUseCase",
    "ZoneOutcome",
]
