# src/gridrecon_api/domain/interfaces/gateways/notification_gateway.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Outbound notification interface (broadcast service boundary).

Layer:
    domain/interfaces/gateways
"""

from __future__ import annotations

from typing import Protocol

from gridrecon_api.domain.entities.audit_ticket import AuditTicket


class NotificationGateway(Protocol):
    """Protocol for notifying operators about newly raised tickets."""

    async def notify_critical_ticket(self, ticket: AuditTicket) -> None:
        """Announce a newly created critical ticket.

        Callers treat this as fire-and-forget; implementations may raise and
        the failure is only logged.
        """
        ...
