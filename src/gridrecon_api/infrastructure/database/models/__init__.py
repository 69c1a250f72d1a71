# src/gridrecon_api/infrastructure/database/models/__init__.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""ORM models; importing this package registers every table on ``Base.metadata``."""

from __future__ import annotations

from gridrecon_api.infrastructure.database.models.audit_tickets import (
    AuditTicketCounterRow,
    AuditTicketEvidenceRow,
    AuditTicketNoteRow,
    AuditTicketRow,
)
from gridrecon_api.infrastructure.database.models.base import Base, metadata
from gridrecon_api.infrastructure.database.models.grid import (
    EnergyReading,
    GridMeter,
    GridZone,
    GridZoneMeter,
    GridZoneSubstation,
)
from gridrecon_api.infrastructure.database.models.reconciliation import (
    ReconciliationReportRow,
    ReconciliationZoneEntryRow,
)

__all__ = [
    "AuditTicketCounterRow",
    "AuditTicketEvidenceRow",
    "AuditTicketNoteRow",
    "AuditTicketRow",
    "Base",
    "EnergyReading",
    "GridMeter",
    "GridZone",
    "GridZoneMeter",
    "GridZoneSubstation",
    "ReconciliationReportRow",
    "ReconciliationZoneEntryRow",
    "metadata",
]
