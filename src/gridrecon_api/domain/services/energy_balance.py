# src/gridrecon_api/domain/services/energy_balance.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Zone energy balance engine (pure domain).

Purpose:
    Compute, for one zone and one window, the energy delivered by the zone's
    substations, the energy reported by its member meters and the resulting
    loss delta.

Layer:
    domain/services

Notes:
    - No I/O. Readings are fetched by the application layer and passed in.
    - Missing substation data is never treated as zero: any uncovered
      sub-range raises :class:`DataGapError`.
    - Silent meters contribute zero and are recorded on the result.
    - Decimal arithmetic throughout; nothing is rounded here.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from gridrecon_api.domain.entities.reading import Reading
from gridrecon_api.domain.entities.reconciliation import ReconciliationResult
from gridrecon_api.domain.entities.zone import Zone
from gridrecon_api.domain.exceptions.reconciliation import (
    DataGapError,
    InvalidWindowError,
    ZoneConfigurationError,
)
from gridrecon_api.domain.services.reading_normalization import normalize_readings

_ZERO = Decimal(0)


@dataclass(frozen=True, slots=True)
class EnergyBalanceConfig:
    """Tunable parameters for the energy balance.

    Attributes:
        max_reading_gap: Longest stretch of a substation feed without samples
            that is still considered covered.
    """

    max_reading_gap: timedelta = timedelta(hours=1)

    def __post_init__(self) -> None:
        """Enforce invariants."""
        if self.max_reading_gap <= timedelta(0):
            raise ValueError("max_reading_gap must be positive.")


def validate_window(window_start: datetime, window_end: datetime) -> None:
    """Raise :class:`InvalidWindowError` unless ``window_end > window_start``."""
    if window_start.tzinfo is None or window_end.tzinfo is None:
        raise InvalidWindowError("Window bounds must be timezone-aware.")
    if window_end <= window_start:
        raise InvalidWindowError(
            "Window end must be after window start.",
            details={
                "window_start": window_start.isoformat(),
                "window_end": window_end.isoformat(),
            },
        )


def validate_zone(zone: Zone) -> None:
    """Raise :class:`ZoneConfigurationError` for zones that cannot be balanced."""
    if not zone.substation_ids:
        raise ZoneConfigurationError(
            f"Zone {zone.zone_id!r} has no supplying substation.",
            details={"zone_id": zone.zone_id},
        )
    if not zone.meter_ids:
        raise ZoneConfigurationError(
            f"Zone {zone.zone_id!r} has no member meters.",
            details={"zone_id": zone.zone_id},
        )


class EnergyBalanceEngine:
    """Pure calculator producing unclassified reconciliation results."""

    def __init__(self, config: EnergyBalanceConfig | None = None) -> None:
        self._config = config or EnergyBalanceConfig()

    # ---- Public API -----------------------------------------------------

    @property
    def config(self) -> EnergyBalanceConfig:
        """Return the engine configuration."""
        return self._config

    def substation_output(
        self,
        substation_id: str,
        readings: Sequence[Reading],
        window_start: datetime,
        window_end: datetime,
    ) -> Decimal:
        """Return one substation's output for the window.

        Raises:
            DataGapError: If part of the window is not covered by readings.
            MixedReadingKindsError: If the feed mixes representations.
        """
        consumption = normalize_readings(
            substation_id,
            readings,
            window_start,
            window_end,
            max_gap=self._config.max_reading_gap,
        )
        gap = consumption.first_gap
        if gap is not None:
            reason = "no readings" if consumption.is_silent else "a reading gap"
            raise DataGapError(
                substation_id=substation_id,
                gap_start=gap.start,
                gap_end=gap.end,
                reason=reason,
            )
        return consumption.energy_kwh

    def compute(
        self,
        *,
        zone: Zone,
        window_start: datetime,
        window_end: datetime,
        substation_readings: Mapping[str, Sequence[Reading]],
        meter_readings: Mapping[str, Sequence[Reading]],
        computed_at: datetime,
        excluded_meter_ids: Collection[str] = (),
    ) -> ReconciliationResult:
        """Compute the zone's balance for ``[window_start, window_end)``.

        Args:
            zone: Zone to balance.
            window_start: Inclusive window start.
            window_end: Exclusive window end.
            substation_readings: Readings keyed by substation id.
            meter_readings: Readings keyed by meter id.
            computed_at: Timestamp recorded on the result.
            excluded_meter_ids: Meters to leave out of the consumption total.

        Returns:
            An unclassified :class:`ReconciliationResult`.

        Raises:
            InvalidWindowError: If the window is empty or reversed.
            ZoneConfigurationError: If the zone lacks substations or meters.
            DataGapError: If any substation feed does not cover the window.
        """
        validate_window(window_start, window_end)
        validate_zone(zone)

        output = _ZERO
        for substation_id in zone.substation_ids:
            output += self.substation_output(
                substation_id,
                substation_readings.get(substation_id, ()),
                window_start,
                window_end,
            )

        excluded = set(excluded_meter_ids)
        consumption = _ZERO
        silent: list[str] = []
        for meter_id in zone.meter_ids:
            if meter_id in excluded:
                continue
            normalized = normalize_readings(
                meter_id,
                meter_readings.get(meter_id, ()),
                window_start,
                window_end,
                max_gap=self._config.max_reading_gap,
            )
            if normalized.is_silent:
                silent.append(meter_id)
            consumption += normalized.energy_kwh

        delta = output - consumption
        return ReconciliationResult(
            zone_id=zone.zone_id,
            window_start=window_start,
            window_end=window_end,
            output_kwh=output,
            consumption_kwh=consumption,
            delta_kwh=delta,
            delta_ratio=(delta / output) if output != 0 else None,
            computed_at=computed_at,
            silent_meter_ids=tuple(silent),
            excluded_meter_ids=tuple(m for m in zone.meter_ids if m in excluded),
        )


__all__ = ["EnergyBalanceConfig", "EnergyBalanceEngine", "validate_window", "validate_zone"]
