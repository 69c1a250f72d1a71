# src/gridrecon_api/domain/services/reading_normalization.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reading normalization into canonical interval consumption.

Purpose:
    Turn a time-ordered series of readings (cumulative register values or
    per-interval energy) into one :class:`IntervalConsumption` for a window.
    The representation is resolved once per entity; the energy balance only
    ever sees the canonical form.

Layer:
    domain/services

Notes:
    - Cumulative series: energy is the sum of positive register steps from the
      baseline (the latest reading at or before ``start``, else the first one
      inside the window) to the latest reading at or before ``end``. Adjacent
      windows therefore share their boundary register value. A register that
      goes down is treated as a counter reset and the post-reset value is
      counted.
    - Interval series: energy is the sum of samples with ``start <= ts < end``.
    - Coverage gaps are reported, not raised; callers decide whether a gap is
      fatal (substations) or merely informative (meters).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Protocol

from gridrecon_api.domain.entities.reading import CoverageGap, IntervalConsumption, Reading
from gridrecon_api.domain.enums.grid import ReadingKind
from gridrecon_api.domain.exceptions.reconciliation import MixedReadingKindsError

_ZERO = Decimal(0)


def detect_gaps(
    timestamps: Sequence[datetime],
    window_start: datetime,
    window_end: datetime,
    max_gap: timedelta,
) -> tuple[CoverageGap, ...]:
    """Return the sub-ranges of the window not covered by samples.

    A stretch counts as a gap when it is strictly longer than ``max_gap``:
    from the window start to the first sample, between consecutive samples,
    and from the last sample to the window end. A baseline sample taken
    before the window start extends coverage back to that sample; the
    reported gap is clipped to the window.

    Args:
        timestamps: Sample timestamps in ascending order.
        window_start: Inclusive window start.
        window_end: Exclusive window end.
        max_gap: Longest tolerated stretch without a sample.

    Returns:
        Gaps in chronological order; the whole window when there are no samples.
    """
    if not timestamps:
        return (CoverageGap(start=window_start, end=window_end),)

    gaps: list[CoverageGap] = []
    previous = window_start
    for ts in timestamps:
        if ts > window_start and ts - previous > max_gap:
            gaps.append(CoverageGap(start=max(previous, window_start), end=ts))
        previous = ts
    if window_end - previous > max_gap:
        gaps.append(CoverageGap(start=max(previous, window_start), end=window_end))
    return tuple(gaps)


class ReadingNormalizer(Protocol):
    """Strategy converting one reading representation to interval form."""

    kind: ReadingKind

    def normalize(
        self,
        entity_id: str,
        readings: Sequence[Reading],
        window_start: datetime,
        window_end: datetime,
    ) -> IntervalConsumption:
        """Return the entity's canonical interval consumption for the window."""
        ...


class CumulativeNormalizer:
    """Normalizer for monotonically increasing register readings."""

    kind = ReadingKind.CUMULATIVE

    def __init__(self, max_gap: timedelta) -> None:
        self._max_gap = max_gap

    def normalize(
        self,
        entity_id: str,
        readings: Sequence[Reading],
        window_start: datetime,
        window_end: datetime,
    ) -> IntervalConsumption:
        ordered = sorted(readings, key=lambda r: r.timestamp)
        in_window = [r for r in ordered if window_start <= r.timestamp <= window_end]
        baseline = next((r for r in reversed(ordered) if r.timestamp <= window_start), None)
        if baseline is None:
            series = in_window
        else:
            series = [baseline, *(r for r in in_window if r.timestamp > window_start)]

        energy = _ZERO
        for prev, cur in zip(series, series[1:], strict=False):
            step = cur.quantity_kwh - prev.quantity_kwh
            # Counter reset (meter swap or register rollover).
            energy += step if step >= 0 else cur.quantity_kwh

        return IntervalConsumption(
            entity_id=entity_id,
            window_start=window_start,
            window_end=window_end,
            energy_kwh=energy,
            sample_count=len(in_window),
            gaps=detect_gaps(
                [r.timestamp for r in series], window_start, window_end, self._max_gap
            ),
        )


class IntervalNormalizer:
    """Normalizer for per-interval energy samples."""

    kind = ReadingKind.INTERVAL

    def __init__(self, max_gap: timedelta) -> None:
        self._max_gap = max_gap

    def normalize(
        self,
        entity_id: str,
        readings: Sequence[Reading],
        window_start: datetime,
        window_end: datetime,
    ) -> IntervalConsumption:
        in_window = sorted(
            (r for r in readings if window_start <= r.timestamp < window_end),
            key=lambda r: r.timestamp,
        )
        return IntervalConsumption(
            entity_id=entity_id,
            window_start=window_start,
            window_end=window_end,
            energy_kwh=sum((r.quantity_kwh for r in in_window), start=_ZERO),
            sample_count=len(in_window),
            gaps=detect_gaps(
                [r.timestamp for r in in_window], window_start, window_end, self._max_gap
            ),
        )


def resolve_kind(entity_id: str, readings: Sequence[Reading]) -> ReadingKind | None:
    """Return the single representation used by ``readings``.

    Returns:
        The shared reading kind, or ``None`` when there are no readings.

    Raises:
        MixedReadingKindsError: If the series mixes representations.
    """
    kinds = {r.kind for r in readings}
    if len(kinds) > 1:
        raise MixedReadingKindsError(entity_id)
    return next(iter(kinds), None)


def normalizer_for(kind: ReadingKind, max_gap: timedelta) -> ReadingNormalizer:
    """Return the normalizer handling ``kind``."""
    if kind is ReadingKind.CUMULATIVE:
        return CumulativeNormalizer(max_gap)
    return IntervalNormalizer(max_gap)


def normalize_readings(
    entity_id: str,
    readings: Sequence[Reading],
    window_start: datetime,
    window_end: datetime,
    *,
    max_gap: timedelta,
) -> IntervalConsumption:
    """Resolve the representation of ``readings`` and normalize them.

    An entity without readings yields a silent consumption covering nothing.
    """
    kind = resolve_kind(entity_id, readings)
    if kind is None:
        return IntervalConsumption(
            entity_id=entity_id,
            window_start=window_start,
            window_end=window_end,
            energy_kwh=_ZERO,
            sample_count=0,
            gaps=(CoverageGap(start=window_start, end=window_end),),
        )
    return normalizer_for(kind, max_gap).normalize(entity_id, readings, window_start, window_end)


__all__ = [
    "CumulativeNormalizer",
    "IntervalNormalizer",
    "ReadingNormalizer",
    "detect_gaps",
    "normalize_readings",
    "normalizer_for",
    "resolve_kind",
]
