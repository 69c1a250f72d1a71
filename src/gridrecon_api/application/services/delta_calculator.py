# src/gridrecon_api/application/services/delta_calculator.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Delta calculator (application service).

Fetches a zone's substation and meter readings from the reading store and
hands them to the pure :class:`EnergyBalanceEngine`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Collection, Sequence
from datetime import UTC, datetime

from gridrecon_api.domain.entities.reading import Reading
from gridrecon_api.domain.entities.reconciliation import ReconciliationResult
from gridrecon_api.domain.entities.zone import Zone
from gridrecon_api.domain.interfaces.gateways.reading_store import ReadingStore
from gridrecon_api.domain.services.energy_balance import (
    EnergyBalanceEngine,
    validate_window,
    validate_zone,
)


class DeltaCalculator:
    """Compute unclassified reconciliation results for single zones."""

    def __init__(
        self,
        reading_store: ReadingStore,
        engine: EnergyBalanceEngine | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = reading_store
        self._engine = engine or EnergyBalanceEngine()
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    async def compute_delta(
        self,
        zone: Zone,
        window_start: datetime,
        window_end: datetime,
        *,
        excluded_meter_ids: Collection[str] = (),
    ) -> ReconciliationResult:
        """Return the zone's balance for the window.

        Raises:
            InvalidWindowError: If the window is empty or reversed.
            ZoneConfigurationError: If the zone lacks substations or meters.
            DataGapError: If a substation feed does not cover the window.
            ReadingStoreUnavailableError: If the store cannot be reached.
        """
        validate_window(window_start, window_end)
        validate_zone(zone)

        excluded = set(excluded_meter_ids)
        meter_ids = [m for m in zone.meter_ids if m not in excluded]

        substation_batches: Sequence[Sequence[Reading]] = await asyncio.gather(
            *(
                self._store.get_substation_readings(s, window_start, window_end)
                for s in zone.substation_ids
            )
        )
        meter_batches: Sequence[Sequence[Reading]] = await asyncio.gather(
            *(self._store.get_meter_readings(m, window_start, window_end) for m in meter_ids)
        )

        return self._engine.compute(
            zone=zone,
            window_start=window_start,
            window_end=window_end,
            substation_readings=dict(zip(zone.substation_ids, substation_batches, strict=True)),
            meter_readings=dict(zip(meter_ids, meter_batches, strict=True)),
            computed_at=self._clock(),
            excluded_meter_ids=excluded,
        )


__all__ = ["DeltaCalculator"]
