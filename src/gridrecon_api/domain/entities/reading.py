# src/gridrecon_api/domain/entities/reading.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Energy readings and their normalized interval form.

Layer:
    domain

Notes:
    - All energy quantities are :class:`decimal.Decimal` kWh.
    - Timestamps must be timezone-aware.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from gridrecon_api.domain.enums.grid import EntityKind, ReadingKind


@dataclass(frozen=True, slots=True)
class Reading:
    """Immutable timestamped energy sample for a meter or a substation.

    Attributes:
        entity_id: Meter or substation identifier.
        entity_kind: Which of the two the reading belongs to.
        timestamp: Sample time (timezone-aware).
        quantity_kwh: Register value (cumulative) or interval energy.
        kind: Representation of ``quantity_kwh``.
    """

    entity_id: str
    entity_kind: EntityKind
    timestamp: datetime
    quantity_kwh: Decimal
    kind: ReadingKind

    def __post_init__(self) -> None:
        """Enforce invariants."""
        if self.timestamp.tzinfo is None:
            raise ValueError("Reading.timestamp must be timezone-aware.")
        if self.quantity_kwh < 0:
            raise ValueError("Reading.quantity_kwh must be non-negative.")


@dataclass(frozen=True, slots=True)
class CoverageGap:
    """Sub-range of a window that no reading covers."""

    start: datetime
    end: datetime

    @property
    def duration_s(self) -> float:
        """Return the gap length in seconds."""
        return (self.end - self.start).total_seconds()


@dataclass(frozen=True, slots=True)
class IntervalConsumption:
    """Canonical interval form of one entity's energy over a window.

    Produced by a reading normalizer regardless of the source representation.

    Attributes:
        entity_id: Meter or substation identifier.
        window_start: Inclusive window start.
        window_end: Exclusive window end.
        energy_kwh: Energy attributed to the window.
        sample_count: Number of readings that contributed.
        gaps: Uncovered sub-ranges, in chronological order.
    """

    entity_id: str
    window_start: datetime
    window_end: datetime
    energy_kwh: Decimal
    sample_count: int
    gaps: tuple[CoverageGap, ...] = ()

    @property
    def is_silent(self) -> bool:
        """Return True when no reading contributed to the window."""
        return self.sample_count == 0

    @property
    def first_gap(self) -> CoverageGap | None:
        """Return the earliest uncovered sub-range, if any."""
        return self.gaps[0] if self.gaps else None
