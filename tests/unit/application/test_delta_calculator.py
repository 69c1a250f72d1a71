# tests/unit/application/test_delta_calculator.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from recon_testkit import (
    NOW,
    WINDOW_END,
    WINDOW_START,
    FixedClock,
    InMemoryReadingStore,
    make_zone,
)

from gridrecon_api.application.services.delta_calculator import DeltaCalculator
from gridrecon_api.domain.entities.reading import Reading
from gridrecon_api.domain.enums.grid import EntityKind, ReadingKind
from gridrecon_api.domain.exceptions.reconciliation import (
    DataGapError,
    InvalidWindowError,
    ReadingStoreUnavailableError,
    ZoneConfigurationError,
)


@pytest.fixture
def store() -> InMemoryReadingStore:
    return InMemoryReadingStore()


async def test_compute_delta_fetches_and_balances(store: InMemoryReadingStore) -> None:
    zone = make_zone("z1", meters=("m1", "m2"), substations=("s1", "s2"))
    store.feed_zone(zone, output=4800, consumption={"m1": 2400, "m2": 1920})

    result = await DeltaCalculator(store, clock=FixedClock()).compute_delta(
        zone, WINDOW_START, WINDOW_END
    )

    assert result.output_kwh == Decimal(4800)
    assert result.consumption_kwh == Decimal(4320)
    assert result.delta_ratio == Decimal("0.1")
    assert result.computed_at == NOW
    assert sorted(store.calls) == ["m1", "m2", "s1", "s2"]


async def test_excluded_meters_are_not_fetched(store: InMemoryReadingStore) -> None:
    zone = make_zone("z1", meters=("m1", "shared"))
    store.feed_zone(zone, output=2400, consumption={"m1": 2400, "shared": 2400})

    result = await DeltaCalculator(store).compute_delta(
        zone, WINDOW_START, WINDOW_END, excluded_meter_ids=["shared"]
    )

    assert "shared" not in store.calls
    assert result.consumption_kwh == Decimal(2400)
    assert result.excluded_meter_ids == ("shared",)


async def test_store_failure_propagates(store: InMemoryReadingStore) -> None:
    zone = make_zone("z1")
    store.feed_zone(zone, output=2400, consumption={"m1": 2400})
    store.unavailable.add("m1")
    with pytest.raises(ReadingStoreUnavailableError):
        await DeltaCalculator(store).compute_delta(zone, WINDOW_START, WINDOW_END)


async def test_missing_substation_feed_is_a_gap(store: InMemoryReadingStore) -> None:
    zone = make_zone("z1")
    with pytest.raises(DataGapError):
        await DeltaCalculator(store).compute_delta(zone, WINDOW_START, WINDOW_END)


async def test_invalid_input_rejected_before_any_fetch(store: InMemoryReadingStore) -> None:
    calculator = DeltaCalculator(store)
    with pytest.raises(InvalidWindowError):
        await calculator.compute_delta(make_zone("z1"), WINDOW_END, WINDOW_START)
    with pytest.raises(ZoneConfigurationError):
        await calculator.compute_delta(
            make_zone("z1", substations=()), WINDOW_START, WINDOW_END
        )
    assert store.calls == []


def _register(entity_id: str, kind: EntityKind) -> list[Reading]:
    """Half-past-the-hour register reads: 1000 kWh at 23:30 the day before, +100 per hour."""
    first = WINDOW_START - timedelta(minutes=30)
    return [
        Reading(
            entity_id=entity_id,
            entity_kind=kind,
            timestamp=first + timedelta(hours=h),
            quantity_kwh=Decimal(1000 + 100 * h),
            kind=ReadingKind.CUMULATIVE,
        )
        for h in range(26)
    ]


async def test_cumulative_window_counts_energy_since_previous_register_read(
    store: InMemoryReadingStore,
) -> None:
    zone = make_zone("z1")
    store.add(_register("s1", EntityKind.SUBSTATION))
    store.add(_register("m1", EntityKind.METER))

    result = await DeltaCalculator(store).compute_delta(zone, WINDOW_START, WINDOW_END)
    following = await DeltaCalculator(store).compute_delta(
        zone, WINDOW_END, WINDOW_END + timedelta(hours=1)
    )

    assert result.output_kwh == Decimal(2400)
    assert result.consumption_kwh == Decimal(2400)
    assert following.output_kwh == Decimal(100)
