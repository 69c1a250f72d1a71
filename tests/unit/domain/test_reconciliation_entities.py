# tests/unit/domain/test_reconciliation_entities.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest
from recon_testkit import NOW, WINDOW_END, WINDOW_START, make_result

from gridrecon_api.domain.entities.reconciliation import (
    ReconciliationReport,
    ReconciliationResult,
    ZoneReconciliationEntry,
)
from gridrecon_api.domain.enums.reconciliation import RunStatus, SeverityTier, ZoneRunStatus


def _running() -> ReconciliationReport:
    return ReconciliationReport(
        run_id="run-1",
        triggered_by="scheduler",
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        status=RunStatus.RUNNING,
        started_at=NOW,
    )


def _ok(
    zone_id: str, output: str, consumption: str, *, suspect: bool = False
) -> ZoneReconciliationEntry:
    return ZoneReconciliationEntry(
        zone_id=zone_id,
        zone_name=zone_id.upper(),
        status=ZoneRunStatus.OK,
        result=make_result(zone_id, output, consumption, suspect=suspect),
    )


def test_result_rejects_inconsistent_delta() -> None:
    result = make_result("z1", "100", "90")
    with pytest.raises(ValueError):
        replace(result, delta_kwh=Decimal(11))


def test_result_ratio_must_track_zero_output() -> None:
    result = make_result("z1", "100", "90")
    with pytest.raises(ValueError):
        replace(result, delta_ratio=None)
    with pytest.raises(ValueError):
        ReconciliationResult(
            zone_id="z1",
            window_start=WINDOW_START,
            window_end=WINDOW_END,
            output_kwh=Decimal(0),
            consumption_kwh=Decimal(0),
            delta_kwh=Decimal(0),
            delta_ratio=Decimal(0),
            computed_at=NOW,
        )


def test_result_rejects_empty_window() -> None:
    with pytest.raises(ValueError):
        make_result("z1", "100", "90", window_end=WINDOW_START)


def test_with_classification_keeps_figures() -> None:
    result = make_result("z1", "100", "60")
    classified = result.with_classification(SeverityTier.CRITICAL, True)
    assert classified.is_classified and not result.is_classified
    assert classified.delta_percent == Decimal(40)
    assert classified.fingerprint()[:7] == result.fingerprint()[:7]


@pytest.mark.parametrize("status", [ZoneRunStatus.OK, ZoneRunStatus.DEGRADED])
def test_processed_entries_need_a_result(status: ZoneRunStatus) -> None:
    with pytest.raises(ValueError):
        ZoneReconciliationEntry(zone_id="z1", zone_name="Z1", status=status)


@pytest.mark.parametrize("status", [ZoneRunStatus.INCOMPLETE, ZoneRunStatus.NOT_PROCESSED])
def test_unprocessed_entries_cannot_carry_a_result(status: ZoneRunStatus) -> None:
    with pytest.raises(ValueError):
        ZoneReconciliationEntry(
            zone_id="z1", zone_name="Z1", status=status, result=make_result("z1", "1", "1")
        )


def test_report_aggregates_and_sorts() -> None:
    entries = [
        _ok("a", "1000", "950"),
        ZoneReconciliationEntry(
            zone_id="b", zone_name="B", status=ZoneRunStatus.INCOMPLETE, error_code="DATA_GAP"
        ),
        _ok("c", "1000", "600", suspect=True),
        _ok("d", "0", "10"),
        _ok("e", "1000", "950"),
        _ok("f", "1000", "1100"),
    ]
    report = _running().finalized(
        status=RunStatus.COMPLETED,
        completed_at=NOW,
        entries=entries,
        orphaned_meter_ids=["m9", "m2", "m9"],
    )

    assert report.is_final
    assert report.zones_total == 6
    assert report.zones_processed == 5
    assert report.zones_flagged == 1
    assert report.total_delta_kwh == Decimal(50 + 400 - 10 + 50 - 100)
    assert report.orphaned_meter_ids == ("m2", "m9")
    assert report.count_by_status()[ZoneRunStatus.INCOMPLETE] == 1
    assert report.count_by_status()[ZoneRunStatus.NOT_PROCESSED] == 0
    assert [e.zone_id for e in report.sorted_entries()] == ["c", "a", "e", "f", "b", "d"]
    assert [e.zone_id for e in report.entries] == ["a", "b", "c", "d", "e", "f"]
    assert report.entry_for("c").suspect  # type: ignore[union-attr]
    assert report.entry_for("zz") is None


def test_final_report_cannot_be_finalized_again() -> None:
    report = _running().finalized(status=RunStatus.FAILED, completed_at=NOW, entries=())
    with pytest.raises(ValueError):
        report.finalized(status=RunStatus.COMPLETED, completed_at=NOW, entries=())


def test_report_cannot_be_finalized_as_running() -> None:
    with pytest.raises(ValueError):
        _running().finalized(status=RunStatus.RUNNING, completed_at=NOW, entries=())
