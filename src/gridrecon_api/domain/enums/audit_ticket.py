# src/gridrecon_api/domain/enums/audit_ticket.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit ticket enums.

Layer:
    domain/enums
"""

from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Audit ticket workflow states."""

    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    RESOLVED_CONFIRMED = "RESOLVED_CONFIRMED"
    RESOLVED_FALSE_POSITIVE = "RESOLVED_FALSE_POSITIVE"
    CANCELLED = "CANCELLED"

    @property
    def is_active(self) -> bool:
        """Return True for states that still await an investigation outcome."""
        return self in (TicketStatus.OPEN, TicketStatus.IN_REVIEW)

    @property
    def is_terminal(self) -> bool:
        """Return True for states that accept no further status change."""
        return not self.is_active

    @property
    def is_resolution(self) -> bool:
        """Return True for the two RESOLVED_* outcomes."""
        return self in (TicketStatus.RESOLVED_CONFIRMED, TicketStatus.RESOLVED_FALSE_POSITIVE)


class TicketOrigin(str, Enum):
    """How a ticket came into existence."""

    AUTOMATIC = "AUTOMATIC"
    MANUAL = "MANUAL"


ACTIVE_TICKET_STATUSES: tuple[TicketStatus, ...] = (TicketStatus.OPEN, TicketStatus.IN_REVIEW)

__all__ = ["ACTIVE_TICKET_STATUSES", "TicketOrigin", "TicketStatus"]
