# src/gridrecon_api/adapters/schemas/http/audit_ticket_schemas.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""HTTP schemas for audit tickets.

Layer:
    adapters/schemas/http
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator, model_validator

from gridrecon_api.adapters.schemas.http.base import BaseHTTPSchema, DecimalStr, UtcDatetime
from gridrecon_api.domain.enums.audit_ticket import TicketOrigin, TicketStatus
from gridrecon_api.domain.enums.reconciliation import SeverityTier, TicketAction


class SuspectedLocationHTTP(BaseHTTPSchema):
    """Point where field staff should look first."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str | None = Field(default=None, max_length=500)


class TicketEvidenceHTTP(BaseHTTPSchema):
    evidence_id: str
    run_id: str | None
    window_start: UtcDatetime
    window_end: UtcDatetime
    output_kwh: DecimalStr | None
    consumption_kwh: DecimalStr | None
    delta_kwh: DecimalStr
    delta_ratio: DecimalStr | None
    severity: SeverityTier | None
    tariff_rate: DecimalStr
    estimated_loss: DecimalStr
    recorded_at: UtcDatetime


class TicketNoteHTTP(BaseHTTPSchema):
    note_id: str
    body: str
    created_at: UtcDatetime
    author: str | None = None
    status_from: TicketStatus | None = None
    status_to: TicketStatus | None = None


class AuditTicketHTTP(BaseHTTPSchema):
    """Audit ticket with its evidence trail and notes."""

    ticket_id: str
    ticket_number: str
    zone_id: str
    zone_name: str
    status: TicketStatus
    origin: TicketOrigin
    window_start: UtcDatetime
    window_end: UtcDatetime
    delta_kwh: DecimalStr
    delta_ratio: DecimalStr | None
    delta_percent: DecimalStr | None
    severity: SeverityTier | None
    estimated_loss: DecimalStr
    tariff_rate: DecimalStr
    currency: str
    created_at: UtcDatetime
    updated_at: UtcDatetime
    created_by: str | None = None
    suspected_location: SuspectedLocationHTTP | None = None
    resolution_notes: str | None = None
    resolved_at: UtcDatetime | None = None
    version: int
    evidence: list[TicketEvidenceHTTP] = Field(default_factory=list)
    notes: list[TicketNoteHTTP] = Field(default_factory=list)


class TicketOutcomeHTTP(BaseHTTPSchema):
    """Result of a create request: the ticket and whether it was new or linked."""

    action: TicketAction
    ticket: AuditTicketHTTP


class CreateAuditTicketRequestHTTP(BaseHTTPSchema):
    """Body of ``POST /v1/reconciliation/tickets`` (manual ticket)."""

    zone_id: str = Field(..., min_length=1, max_length=64)
    window_start: datetime
    window_end: datetime
    created_by: str = Field(..., min_length=1, max_length=128)
    delta_kwh: Decimal = Field(default=Decimal(0))
    delta_ratio: Decimal | None = None
    severity: SeverityTier | None = None
    suspected_location: SuspectedLocationHTTP | None = None
    notes: str | None = Field(default=None, max_length=4000)

    @field_validator("window_start", "window_end")
    @classmethod
    def _require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("window bounds must include a timezone offset")
        return v

    @model_validator(mode="after")
    def _ordered_window(self) -> CreateAuditTicketRequestHTTP:
        if self.window_end <= self.window_start:
            raise ValueError("window_end must be after window_start")
        return self


class UpdateAuditTicketRequestHTTP(BaseHTTPSchema):
    """Body of ``PUT /v1/reconciliation/tickets/{ticket_id}`` (status transition)."""

    status: TicketStatus
    notes: str | None = Field(default=None, max_length=4000)
    expected_status: TicketStatus | None = Field(
        default=None, description="Status the caller last saw; a mismatch is rejected with 409."
    )
    actor: str | None = Field(default=None, max_length=128)


class AppendTicketNoteRequestHTTP(BaseHTTPSchema):
    body: str = Field(..., min_length=1, max_length=4000)
    author: str | None = Field(default=None, max_length=128)


__all__ = [
    "AppendTicketNoteRequestHTTP",
    "AuditTicketHTTP",
    "CreateAuditTicketRequestHTTP",
    "SuspectedLocationHTTP",
    "TicketEvidenceHTTP",
    "TicketNoteHTTP",
    "TicketOutcomeHTTP",
    "UpdateAuditTicketRequestHTTP",
]
