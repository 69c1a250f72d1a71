# src/gridrecon_api/adapters/repositories/audit_tickets_repository.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit tickets repository (SQLAlchemy).

Purpose:
    Persist audit tickets with their evidence and notes, and enforce the
    optimistic version check used by the ticket manager.

Layer:
    adapters/repositories

Design:
    * ``update`` issues ``UPDATE ... WHERE version = :expected`` and reports
      whether a row matched; a miss means another writer got there first.
    * Evidence and notes are append-only; ``update`` inserts the ones whose
      ids are not yet stored.
    * A duplicate active ticket (partial unique index) surfaces as
      :class:`ConcurrentTicketConflictError`.
    * Ticket numbers come from the ``audit_ticket_counters`` row, bumped with
      ``UPDATE ... RETURNING`` inside the caller's transaction.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gridrecon_api.adapters.repositories.base_repository import BaseRepository
from gridrecon_api.domain.entities.audit_ticket import (
    AuditTicket,
    SuspectedLocation,
    TicketEvidence,
    TicketNote,
)
from gridrecon_api.domain.enums.audit_ticket import (
    ACTIVE_TICKET_STATUSES,
    TicketOrigin,
    TicketStatus,
)
from gridrecon_api.domain.enums.reconciliation import SeverityTier
from gridrecon_api.domain.exceptions.audit_ticket import ConcurrentTicketConflictError
from gridrecon_api.domain.interfaces.repositories.audit_tickets_repository import (
    AuditTicketsRepository as AuditTicketsRepositoryPort,
)
from gridrecon_api.infrastructure.database.models.audit_tickets import (
    TICKET_COUNTER,
    AuditTicketCounterRow,
    AuditTicketEvidenceRow,
    AuditTicketNoteRow,
    AuditTicketRow,
)


def _severity(value: str | None) -> SeverityTier | None:
    return SeverityTier(value) if value is not None else None


def _ratio(output_kwh: Decimal | None, ratio: Decimal | None) -> Decimal | None:
    if output_kwh is not None and output_kwh == 0:
        return None
    return ratio


def _evidence_to_domain(row: AuditTicketEvidenceRow) -> TicketEvidence:
    return TicketEvidence(
        evidence_id=row.evidence_id,
        run_id=row.run_id,
        window_start=row.window_start,
        window_end=row.window_end,
        output_kwh=row.output_kwh,
        consumption_kwh=row.consumption_kwh,
        delta_kwh=Decimal(row.delta_kwh),
        delta_ratio=_ratio(row.output_kwh, row.delta_ratio),
        severity=_severity(row.severity),
        tariff_rate=Decimal(row.tariff_rate),
        estimated_loss=Decimal(row.estimated_loss),
        recorded_at=row.recorded_at,
    )


def _note_to_domain(row: AuditTicketNoteRow) -> TicketNote:
    return TicketNote(
        note_id=row.note_id,
        body=row.body,
        created_at=row.created_at,
        author=row.author,
        status_from=TicketStatus(row.status_from) if row.status_from else None,
        status_to=TicketStatus(row.status_to) if row.status_to else None,
    )


def _to_domain(row: AuditTicketRow) -> AuditTicket:
    location: SuspectedLocation | None = None
    if row.suspected_latitude is not None and row.suspected_longitude is not None:
        location = SuspectedLocation(
            latitude=row.suspected_latitude,
            longitude=row.suspected_longitude,
            address=row.suspected_address,
        )
    return AuditTicket(
        ticket_id=row.ticket_id,
        ticket_number=row.ticket_number,
        zone_id=row.zone_id,
        zone_name=row.zone_name,
        status=TicketStatus(row.status),
        origin=TicketOrigin(row.origin),
        window_start=row.window_start,
        window_end=row.window_end,
        delta_kwh=Decimal(row.delta_kwh),
        delta_ratio=row.delta_ratio,
        severity=_severity(row.severity),
        estimated_loss=Decimal(row.estimated_loss),
        tariff_rate=Decimal(row.tariff_rate),
        currency=row.currency,
        created_at=row.created_at,
        updated_at=row.updated_at,
        created_by=row.created_by,
        suspected_location=location,
        resolution_notes=row.resolution_notes,
        resolved_at=row.resolved_at,
        evidence=tuple(_evidence_to_domain(e) for e in row.evidence),
        notes=tuple(_note_to_domain(n) for n in row.notes),
        version=row.version,
    )


def _scalar_columns(ticket: AuditTicket) -> dict[str, object]:
    location = ticket.suspected_location
    return {
        "status": ticket.status.value,
        "origin": ticket.origin.value,
        "zone_name": ticket.zone_name,
        "window_start": ticket.window_start,
        "window_end": ticket.window_end,
        "delta_kwh": ticket.delta_kwh,
        "delta_ratio": ticket.delta_ratio,
        "severity": ticket.severity.value if ticket.severity else None,
        "estimated_loss": ticket.estimated_loss,
        "tariff_rate": ticket.tariff_rate,
        "currency": ticket.currency,
        "updated_at": ticket.updated_at,
        "suspected_latitude": location.latitude if location else None,
        "suspected_longitude": location.longitude if location else None,
        "suspected_address": location.address if location else None,
        "resolution_notes": ticket.resolution_notes,
        "resolved_at": ticket.resolved_at,
        "version": ticket.version,
    }


def _evidence_row(ticket_id: str, ev: TicketEvidence) -> AuditTicketEvidenceRow:
    return AuditTicketEvidenceRow(
        evidence_id=ev.evidence_id,
        ticket_id=ticket_id,
        run_id=ev.run_id,
        window_start=ev.window_start,
        window_end=ev.window_end,
        output_kwh=ev.output_kwh,
        consumption_kwh=ev.consumption_kwh,
        delta_kwh=ev.delta_kwh,
        delta_ratio=ev.delta_ratio,
        severity=ev.severity.value if ev.severity else None,
        tariff_rate=ev.tariff_rate,
        estimated_loss=ev.estimated_loss,
        recorded_at=ev.recorded_at,
    )


def _note_row(ticket_id: str, note: TicketNote) -> AuditTicketNoteRow:
    return AuditTicketNoteRow(
        note_id=note.note_id,
        ticket_id=ticket_id,
        body=note.body,
        created_at=note.created_at,
        author=note.author,
        status_from=note.status_from.value if note.status_from else None,
        status_to=note.status_to.value if note.status_to else None,
    )


class SqlAlchemyAuditTicketsRepository(
    BaseRepository[AuditTicketRow],
    AuditTicketsRepositoryPort,
):
    """SQLAlchemy-backed audit ticket repository."""

    _MODEL_NAME = "audit_tickets"

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session)

    async def add(self, ticket: AuditTicket) -> None:
        """Insert a ticket, its evidence and its notes.

        Raises:
            ConcurrentTicketConflictError: If the zone already has an active ticket.
        """
        async with self._instrumented("add"):
            row = AuditTicketRow(
                ticket_id=ticket.ticket_id,
                ticket_number=ticket.ticket_number,
                zone_id=ticket.zone_id,
                created_at=ticket.created_at,
                created_by=ticket.created_by,
                **_scalar_columns(ticket),
            )
            row.evidence = [_evidence_row(ticket.ticket_id, ev) for ev in ticket.evidence]
            row.notes = [_note_row(ticket.ticket_id, n) for n in ticket.notes]
            self._session.add(row)
            try:
                await self._session.flush()
            except IntegrityError as exc:
                raise ConcurrentTicketConflictError(ticket.zone_id, waited_s=0.0) from exc

    async def next_ticket_sequence(self) -> int:
        async with self._instrumented("next_ticket_sequence"):
            stmt = (
                update(AuditTicketCounterRow)
                .where(AuditTicketCounterRow.name == TICKET_COUNTER)
                .values(value=AuditTicketCounterRow.value + 1)
                .returning(AuditTicketCounterRow.value)
                .execution_options(synchronize_session=False)
            )
            value = (await self._session.execute(stmt)).scalar_one_or_none()
            if value is None:
                # Schemas built from metadata rather than migrations start unseeded.
                self._session.add(AuditTicketCounterRow(name=TICKET_COUNTER, value=1))
                await self._session.flush()
                return 1
            return int(value)

    async def get(self, ticket_id: str) -> AuditTicket | None:
        async with self._instrumented("get"):
            stmt = (
                select(AuditTicketRow)
                .where(AuditTicketRow.ticket_id == ticket_id)
                .execution_options(populate_existing=True)
            )
            row = await self.fetch_optional(stmt)
            return _to_domain(row) if row is not None else None

    async def get_active_for_zone(self, zone_id: str) -> AuditTicket | None:
        async with self._instrumented("get_active_for_zone"):
            stmt = (
                select(AuditTicketRow)
                .where(
                    AuditTicketRow.zone_id == zone_id,
                    AuditTicketRow.status.in_([s.value for s in ACTIVE_TICKET_STATUSES]),
                )
                .execution_options(populate_existing=True)
            )
            row = await self.fetch_optional(stmt)
            return _to_domain(row) if row is not None else None

    async def update(self, ticket: AuditTicket, *, expected_version: int) -> bool:
        """Persist ``ticket`` when the stored version still equals ``expected_version``.

        Returns:
            bool: ``False`` when the version check failed and nothing was written.
        """
        async with self._instrumented("update"):
            stmt = (
                update(AuditTicketRow)
                .where(
                    AuditTicketRow.ticket_id == ticket.ticket_id,
                    AuditTicketRow.version == expected_version,
                )
                .values(**_scalar_columns(ticket))
                .execution_options(synchronize_session=False)
            )
            res = await self._session.execute(stmt)
            if res.rowcount != 1:  # type: ignore[attr-defined]
                return False

            stored_evidence = set(
                (
                    await self._session.execute(
                        select(AuditTicketEvidenceRow.evidence_id).where(
                            AuditTicketEvidenceRow.ticket_id == ticket.ticket_id
                        )
                    )
                ).scalars()
            )
            stored_notes = set(
                (
                    await self._session.execute(
                        select(AuditTicketNoteRow.note_id).where(
                            AuditTicketNoteRow.ticket_id == ticket.ticket_id
                        )
                    )
                ).scalars()
            )
            for ev in ticket.evidence:
                if ev.evidence_id not in stored_evidence:
                    self._session.add(_evidence_row(ticket.ticket_id, ev))
            for note in ticket.notes:
                if note.note_id not in stored_notes:
                    self._session.add(_note_row(ticket.ticket_id, note))
            await self._session.flush()
            # Drop cached identities so the next read sees the new version.
            self._session.expire_all()
            return True

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        limit: int = 50,
    ) -> list[AuditTicket]:
        async with self._instrumented("list_tickets"):
            stmt = select(AuditTicketRow)
            if status is not None:
                stmt = stmt.where(AuditTicketRow.status == status.value)
            stmt = self.order_by_latest(stmt, AuditTicketRow.updated_at, AuditTicketRow.ticket_id)
            rows = await self.fetch_all(stmt.limit(limit))
            return [_to_domain(r) for r in rows]


__all__ = ["SqlAlchemyAuditTicketsRepository"]
