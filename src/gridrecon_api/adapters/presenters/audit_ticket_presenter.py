# src/gridrecon_api/adapters/presenters/audit_ticket_presenter.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Presenters for audit ticket HTTP responses."""

from __future__ import annotations

from collections.abc import Sequence

from gridrecon_api.adapters.schemas.http.audit_ticket_schemas import (
    AuditTicketHTTP,
    SuspectedLocationHTTP,
    TicketEvidenceHTTP,
    TicketNoteHTTP,
    TicketOutcomeHTTP,
)
from gridrecon_api.adapters.schemas.http.envelopes import SuccessEnvelope
from gridrecon_api.application.schemas.dto.audit_tickets import TicketOutcomeDTO
from gridrecon_api.domain.entities.audit_ticket import AuditTicket


def present_ticket_body(ticket: AuditTicket) -> AuditTicketHTTP:
    """Map a ticket to its HTTP shape (evidence and notes oldest first)."""
    location = ticket.suspected_location
    return AuditTicketHTTP(
        ticket_id=ticket.ticket_id,
        ticket_number=ticket.ticket_number,
        zone_id=ticket.zone_id,
        zone_name=ticket.zone_name,
        status=ticket.status,
        origin=ticket.origin,
        window_start=ticket.window_start,
        window_end=ticket.window_end,
        delta_kwh=ticket.delta_kwh,
        delta_ratio=ticket.delta_ratio,
        delta_percent=ticket.delta_percent,
        severity=ticket.severity,
        estimated_loss=ticket.estimated_loss,
        tariff_rate=ticket.tariff_rate,
        currency=ticket.currency,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        created_by=ticket.created_by,
        suspected_location=(
            SuspectedLocationHTTP(
                latitude=location.latitude,
                longitude=location.longitude,
                address=location.address,
            )
            if location is not None
            else None
        ),
        resolution_notes=ticket.resolution_notes,
        resolved_at=ticket.resolved_at,
        version=ticket.version,
        evidence=[
            TicketEvidenceHTTP(
                evidence_id=ev.evidence_id,
                run_id=ev.run_id,
                window_start=ev.window_start,
                window_end=ev.window_end,
                output_kwh=ev.output_kwh,
                consumption_kwh=ev.consumption_kwh,
                delta_kwh=ev.delta_kwh,
                delta_ratio=ev.delta_ratio,
                severity=ev.severity,
                tariff_rate=ev.tariff_rate,
                estimated_loss=ev.estimated_loss,
                recorded_at=ev.recorded_at,
            )
            for ev in ticket.evidence
        ],
        notes=[
            TicketNoteHTTP(
                note_id=n.note_id,
                body=n.body,
                created_at=n.created_at,
                author=n.author,
                status_from=n.status_from,
                status_to=n.status_to,
            )
            for n in ticket.notes
        ],
    )


def present_ticket(ticket: AuditTicket) -> SuccessEnvelope[AuditTicketHTTP]:
    return SuccessEnvelope(data=present_ticket_body(ticket))


def present_ticket_outcome(outcome: TicketOutcomeDTO) -> SuccessEnvelope[TicketOutcomeHTTP]:
    return SuccessEnvelope(
        data=TicketOutcomeHTTP(action=outcome.action, ticket=present_ticket_body(outcome.ticket))
    )


def present_ticket_list(tickets: Sequence[AuditTicket]) -> SuccessEnvelope[list[AuditTicketHTTP]]:
    return SuccessEnvelope(data=[present_ticket_body(t) for t in tickets])


__all__ = [
    "present_ticket",
    "present_ticket_body",
    "present_ticket_list",
    "present_ticket_outcome",
]
