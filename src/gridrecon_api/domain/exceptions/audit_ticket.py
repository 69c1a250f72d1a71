# src/gridrecon_api/domain/exceptions/audit_ticket.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit ticket domain exceptions.

Layer:
    domain/exceptions
"""

from __future__ import annotations

from gridrecon_api.domain.enums.audit_ticket import TicketStatus
from gridrecon_api.domain.exceptions.base import DomainError


class InvalidTransitionError(DomainError):
    """Raised when a status change is not allowed from the ticket's current state.

    Also raised when the caller's view of the ticket is stale. This error is
    never retried automatically.
    """

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        *,
        ticket_id: str,
        current: TicketStatus,
        target: TicketStatus,
    ) -> None:
        super().__init__(
            message,
            details={
                "ticket_id": ticket_id,
                "current_status": current.value,
                "target_status": target.value,
            },
        )
        self.ticket_id = ticket_id
        self.current = current
        self.target = target


class ConcurrentTicketConflictError(DomainError):
    """Raised when the per-zone ticket lock cannot be acquired in time."""

    code = "TICKET_LOCK_CONFLICT"

    def __init__(self, zone_id: str, *, waited_s: float) -> None:
        super().__init__(
            f"Could not acquire the ticket lock for zone {zone_id!r} within {waited_s:g}s.",
            details={"zone_id": zone_id, "waited_s": waited_s},
        )
        self.zone_id = zone_id


class TicketNotFoundError(DomainError):
    """Raised when a ticket id is unknown."""

    code = "TICKET_NOT_FOUND"


class InvalidTicketError(DomainError):
    """Raised when ticket input violates a domain rule (e.g. bad coordinates)."""

    code = "INVALID_TICKET"


__all__ = [
    "ConcurrentTicketConflictError",
    "InvalidTicketError",
    "InvalidTransitionError",
    "TicketNotFoundError",
]
