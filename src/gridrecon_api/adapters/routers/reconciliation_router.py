# src/gridrecon_api/adapters/routers/reconciliation_router.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reconciliation Router (Adapters Layer).

Endpoints:
    POST /v1/reconciliation/run            Run (sync) or start (async) a reconciliation.
    GET  /v1/reconciliation/runs/{run_id}  Poll a report.
    GET  /v1/reconciliation/zones          Latest per-zone summary.

Notes:
    A synchronous run answers 200 with the report, or 502 with the same
    envelope when the run FAILED (systemic feed outage, storage error).
    An asynchronous run persists the RUNNING report, answers 202 with a
    poll URL and finishes in the background.
"""

from __future__ import annotations

from typing import Any, cast

from fastapi import BackgroundTasks, Body, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse

from gridrecon_api.adapters.dependencies.reconciliation_services import (
    ReconciliationServices,
    get_services,
)
from gridrecon_api.adapters.presenters.reconciliation_presenter import (
    present_report,
    present_run_accepted,
    present_zone_summaries,
)
from gridrecon_api.adapters.routers.base_router import (
    BaseRouter,
    domain_error_response,
    error_response,
    trace_id_for,
)
from gridrecon_api.adapters.schemas.http.envelopes import SuccessEnvelope
from gridrecon_api.adapters.schemas.http.reconciliation_schemas import (
    ReconciliationReportHTTP,
    RunAcceptedHTTP,
    RunReconciliationRequestHTTP,
    ZoneSummaryHTTP,
)
from gridrecon_api.application.schemas.dto.reconciliation import RunReconciliationRequestDTO
from gridrecon_api.application.use_cases.reconciliation.run_reconciliation import (
    RunContext,
    RunReconciliationUseCase,
)
from gridrecon_api.domain.enums.reconciliation import RunStatus
from gridrecon_api.domain.exceptions.base import DomainError
from gridrecon_api.infrastructure.logging.logger import get_json_logger, set_request_context
from gridrecon_api.infrastructure.observability.metrics import observe_report

logger = get_json_logger(__name__)

router = BaseRouter(version="v1", resource="reconciliation", tags=["Reconciliation"])

# ---------------------------------------------------------------------------
# FastAPI dependency / parameter singletons
# (Ruff B008: avoid Query()/Body() calls in argument defaults)
# ---------------------------------------------------------------------------

_SERVICES_DEP = Depends(get_services)
_RUN_BODY: Any = Body(default=None)
_Q_SUSPECT_ONLY: Any = Query(
    default=False, description="Only zones whose latest result is flagged suspect."
)


async def _execute_in_background(use_case: RunReconciliationUseCase, ctx: RunContext) -> None:
    """Finish an asynchronously started run."""
    set_request_context(run_id=ctx.run_id)
    try:
        report = await use_case.execute(ctx)
    except Exception:
        logger.exception("reconciliation.api.run.background_failed", extra={"run_id": ctx.run_id})
        return
    observe_report(report)


@router.post(
    "/run",
    summary="Run a reconciliation",
    description=(
        "Reconcile every zone over a window (default: last completed billing "
        "interval). Zones are returned sorted by delta percentage, highest first."
    ),
    response_model=cast(Any, SuccessEnvelope[ReconciliationReportHTTP]),
    responses={
        **BaseRouter.std_error_responses(),
        202: {"model": SuccessEnvelope[RunAcceptedHTTP], "description": "Run started."},
        502: {
            "model": SuccessEnvelope[ReconciliationReportHTTP],
            "description": "Run finished FAILED; the report explains why.",
        },
    },
)
async def run_reconciliation(
    request: Request,
    response: Response,
    background: BackgroundTasks,
    body: RunReconciliationRequestHTTP | None = _RUN_BODY,
    services: ReconciliationServices = _SERVICES_DEP,
) -> SuccessEnvelope[ReconciliationReportHTTP] | JSONResponse:
    """Run (or start) a reconciliation."""
    trace_id = trace_id_for(request, response)
    body = body or RunReconciliationRequestHTTP()
    use_case = services.run_reconciliation

    dto = RunReconciliationRequestDTO(
        window_start=body.window_start,
        window_end=body.window_end,
        triggered_by=body.triggered_by,
        deadline_s=body.deadline_seconds,
    )

    try:
        ctx = await use_case.begin(dto)
    except DomainError as exc:
        return domain_error_response(exc, trace_id=trace_id)
    except Exception as exc:  # pragma: no cover
        logger.exception("reconciliation.api.run.unhandled", extra={"trace_id": trace_id})
        return error_response(
            http_status=500,
            code="INTERNAL_ERROR",
            message="Reconciliation run failed unexpectedly.",
            trace_id=trace_id,
            details={"reason": type(exc).__name__},
        )

    if body.run_async:
        background.add_task(_execute_in_background, use_case, ctx)
        poll_url = str(request.url_for("get_reconciliation_run", run_id=ctx.run_id))
        accepted = present_run_accepted(ctx.report, poll_url=poll_url)
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED, content=accepted.model_dump_http()
        )

    report = await use_case.execute(ctx)
    observe_report(report)
    envelope = present_report(report)
    if report.status is RunStatus.FAILED:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY, content=envelope.model_dump_http()
        )
    return envelope


@router.get(
    "/runs/{run_id}",
    name="get_reconciliation_run",
    summary="Get a reconciliation report",
    response_model=cast(Any, SuccessEnvelope[ReconciliationReportHTTP]),
    responses=BaseRouter.std_error_responses(),
)
async def get_reconciliation_run(
    run_id: str,
    request: Request,
    response: Response,
    services: ReconciliationServices = _SERVICES_DEP,
) -> SuccessEnvelope[ReconciliationReportHTTP] | JSONResponse:
    """Return a report; RUNNING reports have no zone entries yet."""
    trace_id = trace_id_for(request, response)
    try:
        report = await services.get_report.execute(run_id)
    except DomainError as exc:
        return domain_error_response(exc, trace_id=trace_id)
    return present_report(report)


@router.get(
    "/zones",
    summary="Latest reconciliation per zone",
    description="Latest finished outcome of every zone, highest delta percentage first.",
    response_model=cast(Any, SuccessEnvelope[list[ZoneSummaryHTTP]]),
    responses=BaseRouter.std_error_responses(),
)
async def get_zones_reconciliation(
    request: Request,
    response: Response,
    suspect_only: bool = _Q_SUSPECT_ONLY,
    services: ReconciliationServices = _SERVICES_DEP,
) -> SuccessEnvelope[list[ZoneSummaryHTTP]] | JSONResponse:
    trace_id = trace_id_for(request, response)
    try:
        summaries = await services.get_zones.execute(suspect_only=suspect_only)
    except DomainError as exc:
        return domain_error_response(exc, trace_id=trace_id)
    return present_zone_summaries(summaries)
