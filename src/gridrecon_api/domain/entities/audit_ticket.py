# src/gridrecon_api/domain/entities/audit_ticket.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Audit ticket entity.

Purpose:
    Represent a human investigation into a suspect zone-window, with the
    reconciliation evidence that justified it, its financial estimate and
    its review trail.

Layer:
    domain

Notes:
    - Status changes go through :mod:`gridrecon_api.domain.services.ticket_state_machine`.
    - ``estimated_loss`` reflects the tariff in force when each piece of
      evidence was linked; it is never recomputed retroactively.
    - ``version`` increases on every persisted change and backs optimistic
      concurrency checks in repositories.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from gridrecon_api.domain.entities.reconciliation import ReconciliationResult
from gridrecon_api.domain.enums.audit_ticket import TicketOrigin, TicketStatus
from gridrecon_api.domain.enums.reconciliation import SeverityTier
from gridrecon_api.domain.exceptions.audit_ticket import InvalidTicketError

_CENT = Decimal("0.01")


def estimate_loss(delta_kwh: Decimal, tariff_rate: Decimal) -> Decimal:
    """Return the monetary value of a positive delta, rounded to cents.

    Negative deltas (consumption above output) carry no loss.
    """
    if delta_kwh <= 0:
        return Decimal("0.00")
    return (delta_kwh * tariff_rate).quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class SuspectedLocation:
    """Point narrower than the zone where the loss is believed to occur."""

    latitude: float
    longitude: float
    address: str | None = None

    def __post_init__(self) -> None:
        """Enforce coordinate ranges."""
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidTicketError("latitude must be within [-90, 90].")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidTicketError("longitude must be within [-180, 180].")


@dataclass(frozen=True, slots=True)
class TicketEvidence:
    """Reconciliation figures linked to a ticket.

    Attributes:
        evidence_id: Evidence identifier.
        run_id: Reconciliation run that produced the figures (None for manual input).
        window_start: Window the figures cover.
        window_end: Window end (exclusive).
        output_kwh: Substation output, when known.
        consumption_kwh: Summed meter consumption, when known.
        delta_kwh: Loss delta.
        delta_ratio: Delta over output, when defined.
        severity: Tier assigned by the classifier, when known.
        tariff_rate: Tariff used for ``estimated_loss``.
        estimated_loss: ``delta_kwh x tariff_rate`` at link time.
        recorded_at: When the evidence was attached.
    """

    evidence_id: str
    run_id: str | None
    window_start: datetime
    window_end: datetime
    output_kwh: Decimal | None
    consumption_kwh: Decimal | None
    delta_kwh: Decimal
    delta_ratio: Decimal | None
    severity: SeverityTier | None
    tariff_rate: Decimal
    estimated_loss: Decimal
    recorded_at: datetime

    @classmethod
    def from_result(
        cls,
        result: ReconciliationResult,
        *,
        evidence_id: str,
        run_id: str | None,
        tariff_rate: Decimal,
        recorded_at: datetime,
    ) -> TicketEvidence:
        """Build evidence from a classified reconciliation result."""
        return cls(
            evidence_id=evidence_id,
            run_id=run_id,
            window_start=result.window_start,
            window_end=result.window_end,
            output_kwh=result.output_kwh,
            consumption_kwh=result.consumption_kwh,
            delta_kwh=result.delta_kwh,
            delta_ratio=result.delta_ratio,
            severity=result.severity,
            tariff_rate=tariff_rate,
            estimated_loss=estimate_loss(result.delta_kwh, tariff_rate),
            recorded_at=recorded_at,
        )


@dataclass(frozen=True, slots=True)
class TicketNote:
    """Entry of a ticket's review trail."""

    note_id: str
    body: str
    created_at: datetime
    author: str | None = None
    status_from: TicketStatus | None = None
    status_to: TicketStatus | None = None


@dataclass(frozen=True, slots=True)
class AuditTicket:
    """Human follow-up on a suspect zone-window.

    Attributes:
        ticket_id: Ticket identifier.
        ticket_number: Human-facing reference (``AUD-NNNNNN``).
        zone_id: Zone under investigation.
        zone_name: Zone display name at creation time.
        status: Workflow state.
        origin: Automatic detection or manual operator input.
        window_start: Earliest window covered by linked evidence.
        window_end: Latest window end covered by linked evidence.
        delta_kwh: Delta of the evidence with the largest estimated loss.
        delta_ratio: Ratio of that evidence, when defined.
        severity: Tier of that evidence, when known.
        estimated_loss: Largest loss observed across linked evidence.
        tariff_rate: Tariff applied to the headline evidence.
        currency: ISO-like currency code of ``estimated_loss``.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
        created_by: Operator or ``system`` label.
        suspected_location: Optional refinement narrower than the zone.
        resolution_notes: Notes recorded when the ticket was closed.
        resolved_at: Closing timestamp.
        evidence: Linked reconciliation evidence, oldest first.
        notes: Review trail, oldest first.
        version: Optimistic concurrency counter.
    """

    ticket_id: str
    ticket_number: str
    zone_id: str
    zone_name: str
    status: TicketStatus
    origin: TicketOrigin
    window_start: datetime
    window_end: datetime
    delta_kwh: Decimal
    delta_ratio: Decimal | None
    severity: SeverityTier | None
    estimated_loss: Decimal
    tariff_rate: Decimal
    currency: str
    created_at: datetime
    updated_at: datetime
    created_by: str | None = None
    suspected_location: SuspectedLocation | None = None
    resolution_notes: str | None = None
    resolved_at: datetime | None = None
    evidence: tuple[TicketEvidence, ...] = ()
    notes: tuple[TicketNote, ...] = ()
    version: int = 1

    def __post_init__(self) -> None:
        """Enforce invariants."""
        if self.window_end <= self.window_start:
            raise InvalidTicketError("Ticket window_end must be after window_start.")
        if self.estimated_loss < 0:
            raise InvalidTicketError("estimated_loss must be non-negative.")

    @property
    def is_active(self) -> bool:
        """Return True while the ticket is OPEN or IN_REVIEW."""
        return self.status.is_active

    @property
    def delta_percent(self) -> Decimal | None:
        """Return the headline delta ratio as a percentage (display only)."""
        if self.delta_ratio is None:
            return None
        return self.delta_ratio * Decimal(100)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Return True when ``[start, end)`` intersects the ticket window."""
        return start < self.window_end and self.window_start < end
