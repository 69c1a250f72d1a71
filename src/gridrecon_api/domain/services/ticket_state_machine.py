# src/gridrecon_api/domain/services/ticket_state_machine.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit ticket lifecycle rules (pure domain).

Purpose:
    Own every change an :class:`AuditTicket` can undergo: creation from
    evidence, linking further evidence, status transitions and note
    appends. Each operation returns a new ticket value.

Layer:
    domain/services

State graph:
    OPEN -> IN_REVIEW -> RESOLVED_CONFIRMED | RESOLVED_FALSE_POSITIVE
    OPEN -> CANCELLED

    RESOLVED_* and CANCELLED are terminal. Notes may be appended in any state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from gridrecon_api.domain.entities.audit_ticket import (
    AuditTicket,
    SuspectedLocation,
    TicketEvidence,
    TicketNote,
    estimate_loss,
)
from gridrecon_api.domain.enums.audit_ticket import TicketOrigin, TicketStatus
from gridrecon_api.domain.enums.reconciliation import SeverityTier
from gridrecon_api.domain.exceptions.audit_ticket import (
    InvalidTicketError,
    InvalidTransitionError,
)

ALLOWED_TRANSITIONS: Mapping[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.OPEN: frozenset({TicketStatus.IN_REVIEW, TicketStatus.CANCELLED}),
    TicketStatus.IN_REVIEW: frozenset(
        {TicketStatus.RESOLVED_CONFIRMED, TicketStatus.RESOLVED_FALSE_POSITIVE}
    ),
    TicketStatus.RESOLVED_CONFIRMED: frozenset(),
    TicketStatus.RESOLVED_FALSE_POSITIVE: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    """Return True when ``target`` is reachable from ``current`` in one step."""
    return target in ALLOWED_TRANSITIONS[current]


def ticket_number_for(sequence: int) -> str:
    """Return the human-facing ``AUD-NNNNNN`` reference for a ticket sequence number.

    Numbers are zero-padded to six digits and widen past ``AUD-999999``.
    """
    if sequence < 1:
        raise ValueError("Ticket sequence numbers start at 1.")
    return f"AUD-{sequence:06d}"


def open_ticket(
    *,
    ticket_id: str,
    ticket_number: str,
    zone_id: str,
    zone_name: str,
    evidence: TicketEvidence,
    origin: TicketOrigin,
    currency: str,
    created_at: datetime,
    created_by: str | None = None,
    suspected_location: SuspectedLocation | None = None,
    note: str | None = None,
) -> AuditTicket:
    """Create a new OPEN ticket whose headline figures come from ``evidence``."""
    notes: tuple[TicketNote, ...] = ()
    if note and note.strip():
        notes = (
            TicketNote(
                note_id=str(uuid4()),
                body=note.strip(),
                created_at=created_at,
                author=created_by,
            ),
        )
    return AuditTicket(
        ticket_id=ticket_id,
        ticket_number=ticket_number,
        zone_id=zone_id,
        zone_name=zone_name,
        status=TicketStatus.OPEN,
        origin=origin,
        window_start=evidence.window_start,
        window_end=evidence.window_end,
        delta_kwh=evidence.delta_kwh,
        delta_ratio=evidence.delta_ratio,
        severity=evidence.severity,
        estimated_loss=evidence.estimated_loss,
        tariff_rate=evidence.tariff_rate,
        currency=currency,
        created_at=created_at,
        updated_at=created_at,
        created_by=created_by,
        suspected_location=suspected_location,
        evidence=(evidence,),
        notes=notes,
    )


def link_evidence(
    ticket: AuditTicket,
    evidence: TicketEvidence,
    *,
    at: datetime,
    suspected_location: SuspectedLocation | None = None,
    note: str | None = None,
    author: str | None = None,
) -> AuditTicket:
    """Attach supporting evidence to an active ticket.

    The ticket window grows to cover the new evidence and the estimated loss
    becomes the maximum observed. Headline delta figures follow the evidence
    carrying that maximum.

    Raises:
        InvalidTicketError: If the ticket is no longer active.
    """
    if not ticket.is_active:
        raise InvalidTicketError(
            f"Ticket {ticket.ticket_number} is {ticket.status.value}; evidence cannot be linked.",
            details={"ticket_id": ticket.ticket_id, "status": ticket.status.value},
        )

    changes: dict[str, object] = {
        "window_start": min(ticket.window_start, evidence.window_start),
        "window_end": max(ticket.window_end, evidence.window_end),
        "evidence": (*ticket.evidence, evidence),
        "updated_at": at,
    }
    if evidence.estimated_loss > ticket.estimated_loss:
        changes.update(
            estimated_loss=evidence.estimated_loss,
            delta_kwh=evidence.delta_kwh,
            delta_ratio=evidence.delta_ratio,
            severity=evidence.severity,
            tariff_rate=evidence.tariff_rate,
        )
    if suspected_location is not None:
        changes["suspected_location"] = suspected_location
    if note and note.strip():
        changes["notes"] = (
            *ticket.notes,
            TicketNote(note_id=str(uuid4()), body=note.strip(), created_at=at, author=author),
        )
    return replace(ticket, **changes)  # type: ignore[arg-type]


def apply_transition(
    ticket: AuditTicket,
    target: TicketStatus,
    notes: str | None,
    *,
    at: datetime,
    actor: str | None = None,
) -> AuditTicket:
    """Return ``ticket`` moved to ``target``.

    Raises:
        InvalidTransitionError: If ``target`` is not reachable from the
            current status, or if a resolution is attempted without notes.
    """
    if not can_transition(ticket.status, target):
        reason = (
            f"{ticket.status.value} is terminal"
            if ticket.status.is_terminal
            else f"{target.value} is not reachable from {ticket.status.value}"
        )
        raise InvalidTransitionError(
            f"Cannot move ticket {ticket.ticket_number} to {target.value}: {reason}.",
            ticket_id=ticket.ticket_id,
            current=ticket.status,
            target=target,
        )

    body = (notes or "").strip()
    if target.is_resolution and not body:
        raise InvalidTransitionError(
            f"Resolving ticket {ticket.ticket_number} requires non-empty notes.",
            ticket_id=ticket.ticket_id,
            current=ticket.status,
            target=target,
        )

    trail = ticket.notes
    if body:
        trail = (
            *trail,
            TicketNote(
                note_id=str(uuid4()),
                body=body,
                created_at=at,
                author=actor,
                status_from=ticket.status,
                status_to=target,
            ),
        )

    return replace(
        ticket,
        status=target,
        notes=trail,
        updated_at=at,
        resolution_notes=body if target.is_terminal and body else ticket.resolution_notes,
        resolved_at=at if target.is_terminal else ticket.resolved_at,
    )


def append_note(
    ticket: AuditTicket,
    body: str,
    *,
    at: datetime,
    author: str | None = None,
) -> AuditTicket:
    """Append a note; allowed in every state, terminal ones included.

    Raises:
        InvalidTicketError: If ``body`` is blank.
    """
    text = body.strip()
    if not text:
        raise InvalidTicketError("Note body must not be empty.")
    return replace(
        ticket,
        notes=(
            *ticket.notes,
            TicketNote(note_id=str(uuid4()), body=text, created_at=at, author=author),
        ),
        updated_at=at,
    )


def manual_evidence(
    *,
    window_start: datetime,
    window_end: datetime,
    delta_kwh: Decimal,
    delta_ratio: Decimal | None,
    tariff_rate: Decimal,
    recorded_at: datetime,
    severity: SeverityTier | None = None,
) -> TicketEvidence:
    """Build evidence from operator-supplied figures."""
    return TicketEvidence(
        evidence_id=str(uuid4()),
        run_id=None,
        window_start=window_start,
        window_end=window_end,
        output_kwh=None,
        consumption_kwh=None,
        delta_kwh=delta_kwh,
        delta_ratio=delta_ratio,
        severity=severity,
        tariff_rate=tariff_rate,
        estimated_loss=estimate_loss(delta_kwh, tariff_rate),
        recorded_at=recorded_at,
    )


__all__ = [
    "ALLOWED_TRANSITIONS",
    "append_note",
    "apply_transition",
    "can_transition",
    "link_evidence",
    "manual_evidence",
    "open_ticket",
    "ticket_number_for",
]
