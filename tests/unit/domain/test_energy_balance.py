# tests/unit/domain/test_energy_balance.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from recon_testkit import NOW, WINDOW_END, WINDOW_START, interval_series, make_zone

from gridrecon_api.domain.entities.reading import Reading
from gridrecon_api.domain.enums.grid import EntityKind, ReadingKind
from gridrecon_api.domain.exceptions.reconciliation import (
    DataGapError,
    InvalidWindowError,
    MixedReadingKindsError,
    ZoneConfigurationError,
)
from gridrecon_api.domain.services.energy_balance import (
    EnergyBalanceConfig,
    EnergyBalanceEngine,
    validate_window,
    validate_zone,
)


def _cumulative(entity_id: str, kind: EntityKind, values: list[str]) -> list[Reading]:
    return [
        Reading(
            entity_id=entity_id,
            entity_kind=kind,
            timestamp=WINDOW_START + timedelta(hours=i),
            quantity_kwh=Decimal(v),
            kind=ReadingKind.CUMULATIVE,
        )
        for i, v in enumerate(values)
    ]


@pytest.fixture
def engine() -> EnergyBalanceEngine:
    return EnergyBalanceEngine(EnergyBalanceConfig(max_reading_gap=timedelta(hours=1)))


def test_compute_balances_output_against_meters(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1", "m2"), substations=("s1",))

    result = engine.compute(
        zone=zone,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        substation_readings={"s1": interval_series("s1", EntityKind.SUBSTATION, 2400)},
        meter_readings={
            "m1": interval_series("m1", EntityKind.METER, 960),
            "m2": interval_series("m2", EntityKind.METER, 1200),
        },
        computed_at=NOW,
    )

    assert result.output_kwh == Decimal(2400)
    assert result.consumption_kwh == Decimal(2160)
    assert result.delta_kwh == Decimal(240)
    assert result.delta_ratio == Decimal("0.1")
    assert result.delta_percent == Decimal("10.0")
    assert result.severity is None
    assert result.silent_meter_ids == ()


def test_multiple_substations_are_summed(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1",), substations=("s1", "s2"))
    result = engine.compute(
        zone=zone,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        substation_readings={
            "s1": interval_series("s1", EntityKind.SUBSTATION, 1200),
            "s2": interval_series("s2", EntityKind.SUBSTATION, 1200),
        },
        meter_readings={"m1": interval_series("m1", EntityKind.METER, 2400)},
        computed_at=NOW,
    )
    assert result.output_kwh == Decimal(2400)
    assert result.delta_kwh == Decimal(0)
    assert result.delta_ratio == Decimal(0)


def test_cumulative_feeds_use_register_differences(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1",), substations=("s1",))
    hours = 25
    substation = _cumulative(
        "s1", EntityKind.SUBSTATION, [str(1000 + 100 * i) for i in range(hours)]
    )
    meter = _cumulative("m1", EntityKind.METER, [str(50 + 90 * i) for i in range(hours)])

    result = engine.compute(
        zone=zone,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        substation_readings={"s1": substation},
        meter_readings={"m1": meter},
        computed_at=NOW,
    )

    assert result.output_kwh == Decimal(2400)
    assert result.consumption_kwh == Decimal(2160)


def test_silent_meter_counts_zero_and_is_reported(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1", "m2"), substations=("s1",))
    result = engine.compute(
        zone=zone,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        substation_readings={"s1": interval_series("s1", EntityKind.SUBSTATION, 2400)},
        meter_readings={"m1": interval_series("m1", EntityKind.METER, 1200)},
        computed_at=NOW,
    )
    assert result.consumption_kwh == Decimal(1200)
    assert result.silent_meter_ids == ("m2",)


def test_excluded_meters_are_left_out(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1", "m2"), substations=("s1",))
    result = engine.compute(
        zone=zone,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        substation_readings={"s1": interval_series("s1", EntityKind.SUBSTATION, 2400)},
        meter_readings={
            "m1": interval_series("m1", EntityKind.METER, 1200),
            "m2": interval_series("m2", EntityKind.METER, 1200),
        },
        computed_at=NOW,
        excluded_meter_ids={"m2"},
    )
    assert result.consumption_kwh == Decimal(1200)
    assert result.excluded_meter_ids == ("m2",)


def test_zero_output_has_no_ratio(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1",), substations=("s1",))
    result = engine.compute(
        zone=zone,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        substation_readings={"s1": interval_series("s1", EntityKind.SUBSTATION, 0)},
        meter_readings={"m1": interval_series("m1", EntityKind.METER, 24)},
        computed_at=NOW,
    )
    assert result.output_kwh == Decimal(0)
    assert result.delta_kwh == Decimal(-24)
    assert result.delta_ratio is None


def test_substation_without_readings_is_a_data_gap(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1",), substations=("s1",))
    with pytest.raises(DataGapError) as excinfo:
        engine.compute(
            zone=zone,
            window_start=WINDOW_START,
            window_end=WINDOW_END,
            substation_readings={},
            meter_readings={"m1": interval_series("m1", EntityKind.METER, 24)},
            computed_at=NOW,
        )
    err = excinfo.value
    assert err.code == "DATA_GAP"
    assert err.substation_id == "s1"
    assert err.details["reason"] == "no readings"
    assert err.gap_start == WINDOW_START
    assert err.gap_end == WINDOW_END


def test_substation_gap_longer_than_tolerance_is_a_data_gap(
    engine: EnergyBalanceEngine,
) -> None:
    zone = make_zone("z1", meters=("m1",), substations=("s1",))
    hole_start = WINDOW_START + timedelta(hours=5)
    hole_end = WINDOW_START + timedelta(hours=8)
    feed = [
        r
        for r in interval_series("s1", EntityKind.SUBSTATION, 2400)
        if not hole_start <= r.timestamp < hole_end
    ]
    with pytest.raises(DataGapError) as excinfo:
        engine.compute(
            zone=zone,
            window_start=WINDOW_START,
            window_end=WINDOW_END,
            substation_readings={"s1": feed},
            meter_readings={"m1": interval_series("m1", EntityKind.METER, 24)},
            computed_at=NOW,
        )
    assert excinfo.value.details["reason"] == "a reading gap"
    assert excinfo.value.gap_start == WINDOW_START + timedelta(hours=4)
    assert excinfo.value.gap_end == WINDOW_START + timedelta(hours=8)


def test_meter_gaps_do_not_fail_the_zone(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1",), substations=("s1",))
    sparse = interval_series("m1", EntityKind.METER, 240, step=timedelta(hours=6))
    result = engine.compute(
        zone=zone,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        substation_readings={"s1": interval_series("s1", EntityKind.SUBSTATION, 2400)},
        meter_readings={"m1": sparse},
        computed_at=NOW,
    )
    assert result.consumption_kwh == Decimal(240)
    assert result.silent_meter_ids == ()


def test_mixed_reading_kinds_are_rejected(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1",), substations=("s1",))
    mixed = interval_series("s1", EntityKind.SUBSTATION, 2400) + _cumulative(
        "s1", EntityKind.SUBSTATION, ["1"]
    )
    with pytest.raises(MixedReadingKindsError):
        engine.compute(
            zone=zone,
            window_start=WINDOW_START,
            window_end=WINDOW_END,
            substation_readings={"s1": mixed},
            meter_readings={},
            computed_at=NOW,
        )


def test_result_is_reproducible_apart_from_timestamp(engine: EnergyBalanceEngine) -> None:
    zone = make_zone("z1", meters=("m1",), substations=("s1",))
    kwargs = {
        "zone": zone,
        "window_start": WINDOW_START,
        "window_end": WINDOW_END,
        "substation_readings": {"s1": interval_series("s1", EntityKind.SUBSTATION, 2400)},
        "meter_readings": {"m1": interval_series("m1", EntityKind.METER, 1800)},
    }
    first = engine.compute(computed_at=NOW, **kwargs)  # type: ignore[arg-type]
    later = NOW + timedelta(hours=3)
    second = engine.compute(computed_at=later, **kwargs)  # type: ignore[arg-type]
    assert first.fingerprint() == second.fingerprint()
    assert first.computed_at != second.computed_at


@pytest.mark.parametrize(
    ("start", "end"),
    [
        (WINDOW_START, WINDOW_START),
        (WINDOW_END, WINDOW_START),
        (WINDOW_START.replace(tzinfo=None), WINDOW_END),
    ],
)
def test_validate_window_rejects_bad_windows(start: datetime, end: datetime) -> None:
    with pytest.raises(InvalidWindowError) as excinfo:
        validate_window(start, end)
    assert excinfo.value.code == "INVALID_WINDOW"


def test_validate_zone_requires_substation_and_meters() -> None:
    with pytest.raises(ZoneConfigurationError):
        validate_zone(make_zone("z1", meters=("m1",), substations=()))
    with pytest.raises(ZoneConfigurationError):
        validate_zone(make_zone("z1", meters=(), substations=("s1",)))
    validate_zone(make_zone("z1"))


def test_config_rejects_non_positive_gap() -> None:
    with pytest.raises(ValueError):
        EnergyBalanceConfig(max_reading_gap=timedelta(0))
