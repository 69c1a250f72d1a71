# src/gridrecon_api/adapters/routers/audit_tickets_router.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit Tickets Router (Adapters Layer).

Endpoints:
    POST /v1/reconciliation/tickets                      Open a manual ticket (201).
    GET  /v1/reconciliation/tickets                      List tickets.
    GET  /v1/reconciliation/tickets/{ticket_id}          Ticket detail.
    PUT  /v1/reconciliation/tickets/{ticket_id}          Status transition.
    POST /v1/reconciliation/tickets/{ticket_id}/notes    Append a note.
"""

from __future__ import annotations

from typing import Any, cast

from fastapi import Body, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse

from gridrecon_api.adapters.dependencies.reconciliation_services import (
    ReconciliationServices,
    get_services,
)
from gridrecon_api.adapters.presenters.audit_ticket_presenter import (
    present_ticket,
    present_ticket_list,
    present_ticket_outcome,
)
from gridrecon_api.adapters.routers.base_router import (
    BaseRouter,
    domain_error_response,
    error_response,
    trace_id_for,
)
from gridrecon_api.adapters.schemas.http.audit_ticket_schemas import (
    AppendTicketNoteRequestHTTP,
    AuditTicketHTTP,
    CreateAuditTicketRequestHTTP,
    TicketOutcomeHTTP,
    UpdateAuditTicketRequestHTTP,
)
from gridrecon_api.adapters.schemas.http.envelopes import SuccessEnvelope
from gridrecon_api.application.schemas.dto.audit_tickets import (
    AppendTicketNoteRequestDTO,
    ListAuditTicketsRequestDTO,
    OpenAuditTicketRequestDTO,
    TransitionAuditTicketRequestDTO,
)
from gridrecon_api.domain.entities.audit_ticket import SuspectedLocation
from gridrecon_api.domain.enums.audit_ticket import TicketStatus
from gridrecon_api.domain.enums.reconciliation import SeverityTier
from gridrecon_api.domain.exceptions.base import DomainError
from gridrecon_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)

router = BaseRouter(version="v1", resource="reconciliation", tags=["Audit Tickets"])

_SERVICES_DEP = Depends(get_services)
_CREATE_BODY: Any = Body(...)
_UPDATE_BODY: Any = Body(...)
_NOTE_BODY: Any = Body(...)
_Q_STATUS: Any = Query(default=None, alias="status", description="Only tickets in this status.")
_Q_LIMIT: Any = Query(default=50, ge=1, le=500, description="Maximum tickets returned.")


def _unhandled(exc: Exception, *, event: str, trace_id: str | None) -> JSONResponse:
    logger.exception(event, extra={"trace_id": trace_id})
    return error_response(
        http_status=500,
        code="INTERNAL_ERROR",
        message="Audit ticket request failed unexpectedly.",
        trace_id=trace_id,
        details={"reason": type(exc).__name__},
    )


@router.post(
    "/tickets",
    summary="Open a manual audit ticket",
    description=(
        "Open a ticket for a zone by hand. When the zone already has an active "
        "ticket the request is linked into it instead (action `linked`)."
    ),
    status_code=status.HTTP_201_CREATED,
    response_model=cast(Any, SuccessEnvelope[TicketOutcomeHTTP]),
    responses=BaseRouter.std_error_responses(),
)
async def create_ticket(
    request: Request,
    response: Response,
    body: CreateAuditTicketRequestHTTP = _CREATE_BODY,
    services: ReconciliationServices = _SERVICES_DEP,
) -> SuccessEnvelope[TicketOutcomeHTTP] | JSONResponse:
    trace_id = trace_id_for(request, response)
    location = body.suspected_location
    dto = OpenAuditTicketRequestDTO(
        zone_id=body.zone_id,
        window_start=body.window_start,
        window_end=body.window_end,
        created_by=body.created_by,
        delta_kwh=body.delta_kwh,
        delta_ratio=body.delta_ratio,
        severity=SeverityTier(body.severity) if body.severity is not None else None,
        suspected_location=(
            SuspectedLocation(
                latitude=location.latitude,
                longitude=location.longitude,
                address=location.address,
            )
            if location is not None
            else None
        ),
        notes=body.notes,
    )
    try:
        outcome = await services.ticket_manager.open_manual_ticket(dto)
    except DomainError as exc:
        return domain_error_response(exc, trace_id=trace_id)
    except Exception as exc:  # pragma: no cover
        return _unhandled(exc, event="audit_tickets.api.create.unhandled", trace_id=trace_id)
    return present_ticket_outcome(outcome)


@router.get(
    "/tickets",
    summary="List audit tickets",
    description="Tickets ordered by last update, most recent first.",
    response_model=cast(Any, SuccessEnvelope[list[AuditTicketHTTP]]),
    responses=BaseRouter.std_error_responses(),
)
async def list_tickets(
    request: Request,
    response: Response,
    status_filter: TicketStatus | None = _Q_STATUS,
    limit: int = _Q_LIMIT,
    services: ReconciliationServices = _SERVICES_DEP,
) -> SuccessEnvelope[list[AuditTicketHTTP]] | JSONResponse:
    trace_id = trace_id_for(request, response)
    try:
        tickets = await services.ticket_manager.list_tickets(
            ListAuditTicketsRequestDTO(status=status_filter, limit=limit)
        )
    except DomainError as exc:
        return domain_error_response(exc, trace_id=trace_id)
    return present_ticket_list(tickets)


@router.get(
    "/tickets/{ticket_id}",
    summary="Get an audit ticket",
    response_model=cast(Any, SuccessEnvelope[AuditTicketHTTP]),
    responses=BaseRouter.std_error_responses(),
)
async def get_ticket(
    ticket_id: str,
    request: Request,
    response: Response,
    services: ReconciliationServices = _SERVICES_DEP,
) -> SuccessEnvelope[AuditTicketHTTP] | JSONResponse:
    trace_id = trace_id_for(request, response)
    try:
        ticket = await services.ticket_manager.get_ticket(ticket_id)
    except DomainError as exc:
        return domain_error_response(exc, trace_id=trace_id)
    return present_ticket(ticket)


@router.put(
    "/tickets/{ticket_id}",
    summary="Transition an audit ticket",
    description=(
        "Move a ticket along OPEN → IN_REVIEW → RESOLVED_CONFIRMED | "
        "RESOLVED_FALSE_POSITIVE, or OPEN → CANCELLED. Resolutions require notes. "
        "A disallowed move, or a ticket changed since `expected_status`, answers 409."
    ),
    response_model=cast(Any, SuccessEnvelope[AuditTicketHTTP]),
    responses=BaseRouter.std_error_responses(),
)
async def update_ticket(
    ticket_id: str,
    request: Request,
    response: Response,
    body: UpdateAuditTicketRequestHTTP = _UPDATE_BODY,
    services: ReconciliationServices = _SERVICES_DEP,
) -> SuccessEnvelope[AuditTicketHTTP] | JSONResponse:
    trace_id = trace_id_for(request, response)
    dto = TransitionAuditTicketRequestDTO(
        ticket_id=ticket_id,
        target_status=TicketStatus(body.status),
        notes=body.notes,
        expected_status=(
            TicketStatus(body.expected_status) if body.expected_status is not None else None
        ),
        actor=body.actor,
    )
    try:
        ticket = await services.ticket_manager.transition(dto)
    except DomainError as exc:
        return domain_error_response(exc, trace_id=trace_id)
    except Exception as exc:  # pragma: no cover
        return _unhandled(exc, event="audit_tickets.api.transition.unhandled", trace_id=trace_id)
    return present_ticket(ticket)


@router.post(
    "/tickets/{ticket_id}/notes",
    summary="Append a note to an audit ticket",
    response_model=cast(Any, SuccessEnvelope[AuditTicketHTTP]),
    responses=BaseRouter.std_error_responses(),
)
async def append_ticket_note(
    ticket_id: str,
    request: Request,
    response: Response,
    body: AppendTicketNoteRequestHTTP = _NOTE_BODY,
    services: ReconciliationServices = _SERVICES_DEP,
) -> SuccessEnvelope[AuditTicketHTTP] | JSONResponse:
    trace_id = trace_id_for(request, response)
    try:
        ticket = await services.ticket_manager.append_note(
            AppendTicketNoteRequestDTO(ticket_id=ticket_id, body=body.body, author=body.author)
        )
    except DomainError as exc:
        return domain_error_response(exc, trace_id=trace_id)
    return present_ticket(ticket)
