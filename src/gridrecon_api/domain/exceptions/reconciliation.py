# src/gridrecon_api/domain/exceptions/reconciliation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reconciliation domain exceptions.

Purpose:
    Error types raised while computing zone energy balances. They are
    recoverable at the run level: the orchestrator converts them into
    per-zone outcomes instead of aborting the batch.

Layer:
    domain/exceptions
"""

from __future__ import annotations

from datetime import datetime

from gridrecon_api.domain.exceptions.base import DomainError


class DataGapError(DomainError):
    """Raised when a substation feed does not cover part of the window.

    Attributes:
        substation_id: Substation whose readings are missing.
        gap_start: Start of the first uncovered sub-range.
        gap_end: End of the first uncovered sub-range.
    """

    code = "DATA_GAP"

    def __init__(
        self,
        *,
        substation_id: str,
        gap_start: datetime,
        gap_end: datetime,
        reason: str = "no readings",
    ) -> None:
        super().__init__(
            f"Substation {substation_id!r} has {reason} between "
            f"{gap_start.isoformat()} and {gap_end.isoformat()}.",
            details={
                "substation_id": substation_id,
                "gap_start": gap_start.isoformat(),
                "gap_end": gap_end.isoformat(),
                "reason": reason,
            },
        )
        self.substation_id = substation_id
        self.gap_start = gap_start
        self.gap_end = gap_end


class MixedReadingKindsError(DomainError):
    """Raised when one entity's feed mixes cumulative and interval samples."""

    code = "MIXED_READING_KINDS"

    def __init__(self, entity_id: str) -> None:
        super().__init__(
            f"Readings for {entity_id!r} mix cumulative and interval samples.",
            details={"entity_id": entity_id},
        )
        self.entity_id = entity_id


class TopologyInconsistencyError(DomainError):
    """Raised when a meter belongs to two zones or to none.

    The orchestrator does not let this abort a run. The meter is excluded
    from every zone total and the affected zones are reported as degraded.
    """

    code = "TOPOLOGY_INCONSISTENCY"

    def __init__(self, meter_id: str, zone_ids: tuple[str, ...]) -> None:
        if zone_ids:
            message = f"Meter {meter_id!r} is assigned to several zones: {', '.join(zone_ids)}."
        else:
            message = f"Meter {meter_id!r} is registered but assigned to no zone."
        super().__init__(message, details={"meter_id": meter_id, "zone_ids": list(zone_ids)})
        self.meter_id = meter_id
        self.zone_ids = zone_ids


class ZoneConfigurationError(DomainError):
    """Raised when a zone lacks a supplying substation or member meters."""

    code = "ZONE_CONFIGURATION"


class InvalidWindowError(DomainError):
    """Raised when a reconciliation window is empty or reversed."""

    code = "INVALID_WINDOW"


class ZoneNotFoundError(DomainError):
    """Raised when a zone id is unknown to the topology provider."""

    code = "ZONE_NOT_FOUND"


class ReportNotFoundError(DomainError):
    """Raised when a reconciliation run id is unknown."""

    code = "RUN_NOT_FOUND"


class ReadingStoreUnavailableError(DomainError):
    """Raised when the reading store or topology storage cannot be queried."""

    code = "STORAGE_ERROR"


__all__ = [
    "DataGapError",
    "InvalidWindowError",
    "MixedReadingKindsError",
    "ReadingStoreUnavailableError",
    "ReportNotFoundError",
    "TopologyInconsistencyError",
    "ZoneConfigurationError",
    "ZoneNotFoundError",
]
