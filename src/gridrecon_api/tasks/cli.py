# src/gridrecon_api/tasks/cli.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""GridRecon CLI: operational commands (run, schedule).

Commands:
    run         Reconcile every zone once and print the report.
    schedule    Trigger a run periodically until interrupted.

Environment:
    DATABASE_URL        Async SQLAlchemy URL.
    ZONE_LOCK_BACKEND   "memory" or "redis" (REDIS_URL required for redis).
    BROADCAST_BASE_URL  Broadcast service for critical ticket notifications.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime

import typer

from gridrecon_api.adapters.presenters.reconciliation_presenter import present_report
from gridrecon_api.application.schemas.dto.reconciliation import RunReconciliationRequestDTO
from gridrecon_api.dependencies.core.bootstrap import bootstrap
from gridrecon_api.domain.entities.reconciliation import ReconciliationReport
from gridrecon_api.domain.enums.reconciliation import RunStatus
from gridrecon_api.domain.exceptions.base import DomainError
from gridrecon_api.infrastructure.logging.logger import configure_root_logging, get_json_logger
from gridrecon_api.infrastructure.observability.metrics import observe_report

configure_root_logging()
log = get_json_logger(__name__)

app = typer.Typer(add_completion=False, no_args_is_help=True)

# Window bounds must carry an offset; typer's default formats are naive.
_AWARE_FORMATS = ["%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M%z", "%Y-%m-%d %H:%M:%S%z"]


def _echo_report(report: ReconciliationReport) -> None:
    typer.echo(json.dumps(present_report(report).model_dump_http(), indent=2))


async def _run_once(req: RunReconciliationRequestDTO) -> ReconciliationReport:
    async with bootstrap() as state:
        report = await state.services.run_reconciliation.run(req)
        observe_report(report)
        return report


@app.command("run")
def run(
    start: datetime | None = typer.Option(  # noqa: B008
        None,
        "--start",
        formats=_AWARE_FORMATS,
        help="Window start (ISO 8601 with offset). Requires --end.",
    ),
    end: datetime | None = typer.Option(  # noqa: B008
        None,
        "--end",
        formats=_AWARE_FORMATS,
        help="Window end (ISO 8601 with offset). Requires --start.",
    ),
    triggered_by: str = typer.Option("cli", "--triggered-by", help="Label stored on the report."),
    deadline: float | None = typer.Option(  # noqa: B008
        None, "--deadline", min=0.0, help="Run deadline in seconds; 0 disables it."
    ),
) -> None:
    """Reconcile every zone over a window (default: last completed billing interval).

    Exits with status 1 when the run FAILED and 2 when the request is invalid.
    """
    req = RunReconciliationRequestDTO(
        window_start=start, window_end=end, triggered_by=triggered_by, deadline_s=deadline
    )
    try:
        report = asyncio.run(_run_once(req))
    except DomainError as exc:
        log.error("cli.run.rejected", extra={"code": exc.code, "details": dict(exc.details)})
        typer.echo(f"{exc.code}: {exc.message}", err=True)
        raise typer.Exit(code=2) from exc

    _echo_report(report)
    if report.status is RunStatus.FAILED:
        raise typer.Exit(code=1)


@app.command("schedule")
def schedule(
    every_hours: float | None = typer.Option(  # noqa: B008
        None,
        "--every-hours",
        min=0.001,
        help="Hours between runs (default: RECON_SCHEDULE_INTERVAL_S).",
    ),
    triggered_by: str = typer.Option("scheduler", "--triggered-by"),
    max_runs: int | None = typer.Option(  # noqa: B008
        None, "--max-runs", min=1, help="Stop after this many runs."
    ),
) -> None:
    """Trigger a reconciliation periodically over the last completed interval.

    A failed run is logged and the scheduler keeps going.
    """

    async def _loop() -> int:
        runs = 0
        async with bootstrap() as state:
            interval_s = (
                every_hours * 3600.0
                if every_hours is not None
                else state.settings.recon_schedule_interval_s
            )
            log.info("cli.schedule.start", extra={"interval_s": interval_s})
            while max_runs is None or runs < max_runs:
                try:
                    report = await state.services.run_reconciliation.run(
                        RunReconciliationRequestDTO(triggered_by=triggered_by)
                    )
                except DomainError as exc:
                    log.error("cli.schedule.rejected", extra={"code": exc.code})
                else:
                    observe_report(report)
                    log.info(
                        "cli.schedule.run_done",
                        extra={"run_id": report.run_id, "status": report.status.value},
                    )
                runs += 1
                if max_runs is not None and runs >= max_runs:
                    break
                await asyncio.sleep(interval_s)
        return runs

    try:
        runs = asyncio.run(_loop())
    except KeyboardInterrupt:
        log.info("cli.schedule.stopped")
        return
    log.info("cli.schedule.done", extra={"runs": runs})


if __name__ == "__main__":
    app()
