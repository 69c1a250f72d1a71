# src/gridrecon_api/application/services/audit_ticket_manager.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit ticket manager (application service).

Purpose:
    Own the audit ticket lifecycle: open or link tickets for suspect
    results, apply status transitions, append notes and answer queries.

Concurrency:
    Every mutation runs under the zone's exclusive lock and inside its own
    UnitOfWork, as a read-check-write sequence. Combined with optimistic
    version checks in the repository this guarantees that a zone never has
    more than one OPEN/IN_REVIEW ticket and that no transition silently
    overwrites another.

Layer:
    application/services
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from gridrecon_api.application.schemas.dto.audit_tickets import (
    AppendTicketNoteRequestDTO,
    ListAuditTicketsRequestDTO,
    OpenAuditTicketRequestDTO,
    TicketOutcomeDTO,
    TransitionAuditTicketRequestDTO,
)
from gridrecon_api.application.uow import UnitOfWork, UnitOfWorkFactory
from gridrecon_api.domain.entities.audit_ticket import AuditTicket, TicketEvidence
from gridrecon_api.domain.entities.reconciliation import ReconciliationResult
from gridrecon_api.domain.entities.zone import Zone
from gridrecon_api.domain.enums.audit_ticket import TicketOrigin
from gridrecon_api.domain.enums.reconciliation import SeverityTier, TicketAction
from gridrecon_api.domain.exceptions.audit_ticket import (
    ConcurrentTicketConflictError,
    InvalidTicketError,
    InvalidTransitionError,
    TicketNotFoundError,
)
from gridrecon_api.domain.interfaces.gateways.notification_gateway import NotificationGateway
from gridrecon_api.domain.interfaces.gateways.topology_provider import TopologyProvider
from gridrecon_api.domain.interfaces.gateways.zone_lock_manager import ZoneLockManager
from gridrecon_api.domain.interfaces.repositories.audit_tickets_repository import (
    AuditTicketsRepository,
)
from gridrecon_api.domain.services import ticket_state_machine as machine
from gridrecon_api.domain.services.energy_balance import validate_window

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass(frozen=True, slots=True)
class TicketPolicy:
    """Economic and locking parameters for ticket management.

    Attributes:
        tariff_rate: Price of one kWh in ``currency``.
        currency: Currency code of estimated losses.
        lock_timeout_s: Longest wait for a zone lock.
        notify_tiers: Severity tiers that trigger a broadcast on creation.
    """

    tariff_rate: Decimal = Decimal("200")
    currency: str = "GNF"
    lock_timeout_s: float = 5.0
    notify_tiers: frozenset[SeverityTier] = field(
        default_factory=lambda: frozenset({SeverityTier.CRITICAL})
    )

    def __post_init__(self) -> None:
        """Enforce invariants."""
        if self.tariff_rate < 0:
            raise ValueError("tariff_rate must be non-negative.")
        if self.lock_timeout_s <= 0:
            raise ValueError("lock_timeout_s must be positive.")


def _tickets_repo(tx: UnitOfWork) -> AuditTicketsRepository:
    repo = getattr(tx, "audit_tickets_repo", None)
    if repo is not None:
        return repo  # type: ignore[no-any-return]
    return tx.get_repository(AuditTicketsRepository)  # type: ignore[no-any-return]


class AuditTicketManager:
    """Create, transition and query audit tickets.

    Args:
        uow_factory: Returns a fresh UnitOfWork per transaction.
        lock_manager: Per-zone exclusive locks.
        policy: Tariff, currency and lock parameters.
        topology: Zone lookup for manual tickets.
        notifier: Optional broadcast gateway for critical tickets.
        clock: Injectable UTC clock.
    """

    def __init__(
        self,
        *,
        uow_factory: UnitOfWorkFactory,
        lock_manager: ZoneLockManager,
        policy: TicketPolicy | None = None,
        topology: TopologyProvider | None = None,
        notifier: NotificationGateway | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._locks = lock_manager
        self._policy = policy or TicketPolicy()
        self._topology = topology
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._pending_notifications: set[asyncio.Task[Any]] = set()

    @property
    def policy(self) -> TicketPolicy:
        """Return the active ticket policy."""
        return self._policy

    # ---- Mutations --------------------------------------------------------

    async def create_or_update_ticket(
        self,
        zone: Zone,
        result: ReconciliationResult,
        *,
        run_id: str | None = None,
        created_by: str = SYSTEM_ACTOR,
    ) -> TicketOutcomeDTO:
        """Open a ticket for a suspect result, or link it to the active one.

        The zone's OPEN/IN_REVIEW ticket, if any, receives the result as
        supporting evidence (its window grows to cover it and its estimated
        loss becomes the maximum observed). Otherwise a new OPEN ticket is
        created.

        Raises:
            ConcurrentTicketConflictError: If the zone lock is not obtained in
                time or the active ticket changed underneath us.
        """
        async with self._locks.hold(zone.zone_id, timeout_s=self._policy.lock_timeout_s):
            now = self._clock()
            evidence = TicketEvidence.from_result(
                result,
                evidence_id=str(uuid4()),
                run_id=run_id,
                tariff_rate=self._policy.tariff_rate,
                recorded_at=now,
            )
            async with self._uow_factory() as tx:
                repo = _tickets_repo(tx)
                active = await repo.get_active_for_zone(zone.zone_id)
                if active is not None:
                    ticket = await self._save_versioned(
                        repo, machine.link_evidence(active, evidence, at=now), active
                    )
                    action = TicketAction.LINKED
                else:
                    sequence = await repo.next_ticket_sequence()
                    ticket = machine.open_ticket(
                        ticket_id=str(uuid4()),
                        ticket_number=machine.ticket_number_for(sequence),
                        zone_id=zone.zone_id,
                        zone_name=zone.name,
                        evidence=evidence,
                        origin=TicketOrigin.AUTOMATIC,
                        currency=self._policy.currency,
                        created_at=now,
                        created_by=created_by,
                    )
                    await repo.add(ticket)
                    action = TicketAction.CREATED
                await tx.commit()

        logger.info(
            "audit_tickets.%s",
            action.value,
            extra={
                "ticket_id": ticket.ticket_id,
                "ticket_number": ticket.ticket_number,
                "zone_id": zone.zone_id,
                "run_id": run_id,
                "estimated_loss": str(ticket.estimated_loss),
            },
        )
        if action is TicketAction.CREATED:
            self._notify_if_needed(ticket)
        return TicketOutcomeDTO(ticket=ticket, action=action)

    async def open_manual_ticket(self, req: OpenAuditTicketRequestDTO) -> TicketOutcomeDTO:
        """Open a ticket on operator request, bypassing automatic detection.

        When the zone already has an active ticket the request is linked to it
        instead, so the one-active-ticket-per-zone rule still holds.

        Raises:
            ZoneNotFoundError: If the zone is unknown.
            InvalidWindowError: If the window is empty or reversed.
            InvalidTicketError: If the suspected location lies outside the zone.
        """
        validate_window(req.window_start, req.window_end)
        if self._topology is None:
            raise RuntimeError("Manual tickets require a topology provider.")
        zone = await self._topology.get_zone(req.zone_id)
        location = req.suspected_location
        if (
            location is not None
            and zone.bounds is not None
            and not zone.bounds.contains(location.latitude, location.longitude)
        ):
            raise InvalidTicketError(
                f"Suspected location lies outside zone {zone.zone_id!r}.",
                details={"zone_id": zone.zone_id},
            )

        async with self._locks.hold(zone.zone_id, timeout_s=self._policy.lock_timeout_s):
            now = self._clock()
            evidence = machine.manual_evidence(
                window_start=req.window_start,
                window_end=req.window_end,
                delta_kwh=req.delta_kwh,
                delta_ratio=req.delta_ratio,
                severity=req.severity,
                tariff_rate=self._policy.tariff_rate,
                recorded_at=now,
            )
            async with self._uow_factory() as tx:
                repo = _tickets_repo(tx)
                active = await repo.get_active_for_zone(zone.zone_id)
                if active is not None:
                    ticket = machine.link_evidence(
                        active,
                        evidence,
                        at=now,
                        suspected_location=location,
                        note=req.notes,
                        author=req.created_by,
                    )
                    ticket = await self._save_versioned(repo, ticket, active)
                    action = TicketAction.LINKED
                else:
                    sequence = await repo.next_ticket_sequence()
                    ticket = machine.open_ticket(
                        ticket_id=str(uuid4()),
                        ticket_number=machine.ticket_number_for(sequence),
                        zone_id=zone.zone_id,
                        zone_name=zone.name,
                        evidence=evidence,
                        origin=TicketOrigin.MANUAL,
                        currency=self._policy.currency,
                        created_at=now,
                        created_by=req.created_by,
                        suspected_location=location,
                        note=req.notes,
                    )
                    await repo.add(ticket)
                    action = TicketAction.CREATED
                await tx.commit()

        logger.info(
            "audit_tickets.manual.%s",
            action.value,
            extra={"ticket_id": ticket.ticket_id, "zone_id": zone.zone_id, "by": req.created_by},
        )
        if action is TicketAction.CREATED:
            self._notify_if_needed(ticket)
        return TicketOutcomeDTO(ticket=ticket, action=action)

    async def transition(self, req: TransitionAuditTicketRequestDTO) -> AuditTicket:
        """Move a ticket along the state graph.

        Raises:
            TicketNotFoundError: If the ticket does not exist.
            InvalidTransitionError: If the target is unreachable, notes are
                missing on resolution, or the caller's view is stale.
            ConcurrentTicketConflictError: If the zone lock is not obtained.
        """
        current = await self.get_ticket(req.ticket_id)
        async with self._locks.hold(current.zone_id, timeout_s=self._policy.lock_timeout_s):
            async with self._uow_factory() as tx:
                repo = _tickets_repo(tx)
                ticket = await repo.get(req.ticket_id)
                if ticket is None:
                    raise TicketNotFoundError(f"Ticket {req.ticket_id!r} not found.")
                if req.expected_status is not None and ticket.status is not req.expected_status:
                    raise InvalidTransitionError(
                        f"Ticket {ticket.ticket_number} is {ticket.status.value}, "
                        f"not {req.expected_status.value}; re-read it before retrying.",
                        ticket_id=ticket.ticket_id,
                        current=ticket.status,
                        target=req.target_status,
                    )
                updated = _next_version(
                    machine.apply_transition(
                        ticket, req.target_status, req.notes, at=self._clock(), actor=req.actor
                    )
                )
                if not await repo.update(updated, expected_version=ticket.version):
                    raise InvalidTransitionError(
                        f"Ticket {ticket.ticket_number} changed concurrently; re-read it.",
                        ticket_id=ticket.ticket_id,
                        current=ticket.status,
                        target=req.target_status,
                    )
                await tx.commit()

        logger.info(
            "audit_tickets.transition",
            extra={
                "ticket_id": updated.ticket_id,
                "from": ticket.status.value,
                "to": updated.status.value,
                "actor": req.actor,
            },
        )
        return updated

    async def append_note(self, req: AppendTicketNoteRequestDTO) -> AuditTicket:
        """Append a note to a ticket in any state.

        Raises:
            TicketNotFoundError: If the ticket does not exist.
            InvalidTicketError: If the note is blank.
        """
        current = await self.get_ticket(req.ticket_id)
        async with self._locks.hold(current.zone_id, timeout_s=self._policy.lock_timeout_s):
            async with self._uow_factory() as tx:
                repo = _tickets_repo(tx)
                ticket = await repo.get(req.ticket_id)
                if ticket is None:
                    raise TicketNotFoundError(f"Ticket {req.ticket_id!r} not found.")
                updated = await self._save_versioned(
                    repo,
                    machine.append_note(ticket, req.body, at=self._clock(), author=req.author),
                    ticket,
                )
                await tx.commit()
        return updated

    # ---- Queries ----------------------------------------------------------

    async def get_ticket(self, ticket_id: str) -> AuditTicket:
        """Return a ticket.

        Raises:
            TicketNotFoundError: If the ticket does not exist.
        """
        async with self._uow_factory() as tx:
            ticket = await _tickets_repo(tx).get(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(
                f"Ticket {ticket_id!r} not found.", details={"ticket_id": ticket_id}
            )
        return ticket

    async def list_tickets(self, req: ListAuditTicketsRequestDTO) -> Sequence[AuditTicket]:
        """Return tickets filtered by status, most recently updated first."""
        limit = max(1, req.limit)
        async with self._uow_factory() as tx:
            return await _tickets_repo(tx).list_tickets(status=req.status, limit=limit)

    # ---- Internals --------------------------------------------------------

    @staticmethod
    async def _save_versioned(
        repo: AuditTicketsRepository,
        ticket: AuditTicket,
        previous: AuditTicket,
    ) -> AuditTicket:
        saved = _next_version(ticket)
        if not await repo.update(saved, expected_version=previous.version):
            raise ConcurrentTicketConflictError(previous.zone_id, waited_s=0.0)
        return saved

    def _notify_if_needed(self, ticket: AuditTicket) -> None:
        if self._notifier is None or ticket.severity not in self._policy.notify_tiers:
            return
        task = asyncio.create_task(self._notifier.notify_critical_ticket(ticket))
        self._pending_notifications.add(task)
        task.add_done_callback(self._on_notification_done)

    def _on_notification_done(self, task: asyncio.Task[Any]) -> None:
        self._pending_notifications.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "audit_tickets.notify.failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

    async def drain_notifications(self) -> None:
        """Wait for in-flight notifications (used at shutdown and in tests)."""
        if self._pending_notifications:
            await asyncio.gather(*self._pending_notifications, return_exceptions=True)


def _next_version(ticket: AuditTicket) -> AuditTicket:
    return replace(ticket, version=ticket.version + 1)


__all__ = ["SYSTEM_ACTOR", "AuditTicketManager", "TicketPolicy"]
