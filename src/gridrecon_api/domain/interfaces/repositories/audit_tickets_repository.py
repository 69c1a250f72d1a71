# src/gridrecon_api/domain/interfaces/repositories/audit_tickets_repository.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit tickets repository interface.

Purpose:
    Persist audit tickets with their evidence and review trail.

Layer:
    domain/interfaces/repositories

Notes:
    Updates are optimistic: ``update`` only applies when the stored version
    still equals ``expected_version``, and bumps it on success.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from gridrecon_api.domain.entities.audit_ticket import AuditTicket
from gridrecon_api.domain.enums.audit_ticket import TicketStatus


class AuditTicketsRepository(Protocol):
    """Protocol for audit ticket persistence."""

    async def add(self, ticket: AuditTicket) -> None:
        """Insert a new ticket with its evidence and notes."""
        ...

    async def next_ticket_sequence(self) -> int:
        """Reserve and return the next ticket sequence number (1, 2, ...)."""
        ...

    async def get(self, ticket_id: str) -> AuditTicket | None:
        """Return a ticket by id, or ``None``."""
        ...

    async def get_active_for_zone(self, zone_id: str) -> AuditTicket | None:
        """Return the zone's OPEN or IN_REVIEW ticket, if any."""
        ...

    async def update(self, ticket: AuditTicket, *, expected_version: int) -> bool:
        """Persist ``ticket`` if the stored version is ``expected_version``.

        New evidence and notes (by id) are appended; existing ones are kept.

        Returns:
            True when the row was updated, False when the version had moved on.
        """
        ...

    async def list_tickets(
        self, *, status: TicketStatus | None = None, limit: int = 50
    ) -> Sequence[AuditTicket]:
        """Return tickets, most recently updated first."""
        ...
