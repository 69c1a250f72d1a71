# src/gridrecon_api/application/schemas/dto/audit_tickets.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Application DTOs for audit ticket use cases.

Layer:
    application/schemas/dto
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from gridrecon_api.domain.entities.audit_ticket import AuditTicket, SuspectedLocation
from gridrecon_api.domain.enums.audit_ticket import TicketStatus
from gridrecon_api.domain.enums.reconciliation import SeverityTier, TicketAction


@dataclass(frozen=True, slots=True)
class OpenAuditTicketRequestDTO:
    """Operator request to open a ticket without automatic detection."""

    zone_id: str
    window_start: datetime
    window_end: datetime
    created_by: str
    delta_kwh: Decimal = Decimal(0)
    delta_ratio: Decimal | None = None
    severity: SeverityTier | None = None
    suspected_location: SuspectedLocation | None = None
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class TransitionAuditTicketRequestDTO:
    """Status change request.

    Attributes:
        ticket_id: Ticket to move.
        target_status: Desired status.
        notes: Mandatory for RESOLVED_* targets.
        expected_status: Status the caller last observed; a mismatch fails.
        actor: Operator performing the change.
    """

    ticket_id: str
    target_status: TicketStatus
    notes: str | None = None
    expected_status: TicketStatus | None = None
    actor: str | None = None


@dataclass(frozen=True, slots=True)
class AppendTicketNoteRequestDTO:
    """Note appended to a ticket's review trail."""

    ticket_id: str
    body: str
    author: str | None = None


@dataclass(frozen=True, slots=True)
class ListAuditTicketsRequestDTO:
    """Ticket listing filter."""

    status: TicketStatus | None = None
    limit: int = 50


@dataclass(frozen=True, slots=True)
class TicketOutcomeDTO:
    """Ticket produced by an open-or-link operation and what was done."""

    ticket: AuditTicket
    action: TicketAction
