# src/gridrecon_api/infrastructure/database/models/reconciliation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reconciliation run models.

Schema:
    reconciliation_reports
    reconciliation_zone_entries

Notes:
    - A zone result exists only as an entry of its report; the window lives
      on the report.
    - Result columns are null for incomplete and not-processed entries.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gridrecon_api.infrastructure.database.models.base import (
    KWH,
    RATIO,
    Base,
    UTCDateTime,
    qualified,
)


class ReconciliationReportRow(Base):
    """One reconciliation run."""

    __tablename__ = "reconciliation_reports"
    __table_args__ = (
        Index("ix_reconciliation_reports_status_completed", "status", "completed_at"),
    )

    run_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    triggered_by: Mapped[str] = mapped_column(String(128), nullable=False)
    window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    window_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    failure_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    orphaned_meter_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    entries: Mapped[list[ReconciliationZoneEntryRow]] = relationship(
        back_populates="report",
        cascade="all",
        lazy="selectin",
        order_by="ReconciliationZoneEntryRow.position",
    )


class ReconciliationZoneEntryRow(Base):
    """Per-zone outcome within a run."""

    __tablename__ = "reconciliation_zone_entries"
    __table_args__ = (
        Index("ix_reconciliation_zone_entries_zone_run", "zone_id", "run_id"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    run_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(qualified("reconciliation_reports.run_id"), ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    zone_id: Mapped[str] = mapped_column(String(64), nullable=False)
    zone_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    degraded_reasons: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    ticket_action: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    ticket_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    meter_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    output_kwh: Mapped[Decimal | None] = mapped_column(KWH, nullable=True)
    consumption_kwh: Mapped[Decimal | None] = mapped_column(KWH, nullable=True)
    delta_kwh: Mapped[Decimal | None] = mapped_column(KWH, nullable=True)
    delta_ratio: Mapped[Decimal | None] = mapped_column(RATIO, nullable=True)
    computed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    severity: Mapped[str | None] = mapped_column(String(16), nullable=True)
    suspect: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    silent_meter_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    excluded_meter_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    report: Mapped[ReconciliationReportRow] = relationship(back_populates="entries")

    def has_result(self) -> bool:
        """Return True when the entry carries computed figures."""
        return self.computed_at is not None

