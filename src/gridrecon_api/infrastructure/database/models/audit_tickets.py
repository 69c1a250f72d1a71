# src/gridrecon_api/infrastructure/database/models/audit_tickets.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit ticket models: tickets, linked evidence and notes.

Schema:
    audit_tickets
    audit_ticket_evidence
    audit_ticket_notes
    audit_ticket_counters

Notes:
    - ``uq_audit_tickets_active_zone`` is a partial unique index allowing at
      most one OPEN/IN_REVIEW ticket per zone, on PostgreSQL and SQLite alike.
    - ``version`` supports optimistic concurrency control.
    - ``audit_ticket_counters`` holds the ``AUD-NNNNNN`` sequence; it is bumped
      inside the creating transaction, so the row lock serializes creators.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gridrecon_api.infrastructure.database.models.base import (
    KWH,
    MONEY,
    RATIO,
    Base,
    OptimisticLockingMixin,
    UTCDateTime,
    qualified,
)

_ACTIVE_PREDICATE = text("status IN ('OPEN', 'IN_REVIEW')")


class AuditTicketRow(OptimisticLockingMixin, Base):
    """Investigation record for a suspect zone."""

    __tablename__ = "audit_tickets"
    __table_args__ = (
        Index(
            "uq_audit_tickets_active_zone",
            "zone_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_audit_tickets_status_updated", "status", "updated_at"),
    )

    ticket_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    zone_id: Mapped[str] = mapped_column(String(64), nullable=False)
    zone_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    origin: Mapped[str] = mapped_column(String(16), nullable=False)
    window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    window_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    delta_kwh: Mapped[Decimal] = mapped_column(KWH, nullable=False)
    delta_ratio: Mapped[Decimal | None] = mapped_column(RATIO, nullable=True)
    severity: Mapped[str | None] = mapped_column(String(16), nullable=True)
    estimated_loss: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    tariff_rate: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    suspected_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    suspected_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    suspected_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    evidence: Mapped[list[AuditTicketEvidenceRow]] = relationship(
        cascade="all",
        lazy="selectin",
        order_by="AuditTicketEvidenceRow.recorded_at",
    )
    notes: Mapped[list[AuditTicketNoteRow]] = relationship(
        cascade="all",
        lazy="selectin",
        order_by="AuditTicketNoteRow.created_at",
    )


class AuditTicketEvidenceRow(Base):
    """Reconciliation figures supporting a ticket."""

    __tablename__ = "audit_ticket_evidence"

    evidence_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ticket_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(qualified("audit_tickets.ticket_id"), ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    run_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    window_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    output_kwh: Mapped[Decimal | None] = mapped_column(KWH, nullable=True)
    consumption_kwh: Mapped[Decimal | None] = mapped_column(KWH, nullable=True)
    delta_kwh: Mapped[Decimal] = mapped_column(KWH, nullable=False)
    delta_ratio: Mapped[Decimal | None] = mapped_column(RATIO, nullable=True)
    severity: Mapped[str | None] = mapped_column(String(16), nullable=True)
    tariff_rate: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    estimated_loss: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class AuditTicketNoteRow(Base):
    """Free-text note or status change on a ticket."""

    __tablename__ = "audit_ticket_notes"

    note_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ticket_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(qualified("audit_tickets.ticket_id"), ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    author: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status_from: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status_to: Mapped[str | None] = mapped_column(String(32), nullable=True)


TICKET_COUNTER = "audit_ticket"


class AuditTicketCounterRow(Base):
    """Named monotonically increasing counter."""

    __tablename__ = "audit_ticket_counters"

    name: Mapped[str] = mapped_column(String(32), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
