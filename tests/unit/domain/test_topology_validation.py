# tests/unit/domain/test_topology_validation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT

from __future__ import annotations

import pytest
from recon_testkit import make_zone

from gridrecon_api.domain.entities.zone import GeoBounds, Zone
from gridrecon_api.domain.services.topology_validation import audit_topology


def test_consistent_topology_has_no_issues() -> None:
    zones = [make_zone("z1", meters=("m1", "m2")), make_zone("z2", meters=("m3",))]
    audit = audit_topology(zones, ["m1", "m2", "m3"])
    assert audit.is_consistent
    assert audit.excluded_meter_ids == frozenset()
    assert audit.reasons_for("z1") == ()


def test_meter_in_two_zones_is_excluded_and_degrades_both() -> None:
    zones = [
        make_zone("z2", meters=("m1", "shared")),
        make_zone("z1", meters=("m2", "shared")),
        make_zone("z3", meters=("m3",)),
    ]
    audit = audit_topology(zones)

    assert audit.excluded_meter_ids == {"shared"}
    assert audit.degraded_zone_ids == {"z1", "z2"}
    [issue] = audit.issues
    assert issue.code == "TOPOLOGY_INCONSISTENCY"
    assert issue.meter_id == "shared"
    assert issue.zone_ids == ("z1", "z2")
    assert audit.reasons_for("z1") == (issue.message,)
    assert audit.reasons_for("z3") == ()


def test_orphans_are_reported_without_degrading_zones() -> None:
    audit = audit_topology([make_zone("z1", meters=("m1",))], ["m1", "m9", "m8"])
    assert audit.orphaned_meter_ids == {"m8", "m9"}
    assert audit.degraded_zone_ids == frozenset()
    assert [i.meter_id for i in audit.issues] == ["m8", "m9"]
    assert all(i.zone_ids == () for i in audit.issues)
    assert "no zone" in audit.issues[0].message


def test_orphans_skipped_when_registry_unknown() -> None:
    audit = audit_topology([make_zone("z1", meters=("m1",))], None)
    assert audit.orphaned_meter_ids == frozenset()
    assert audit.is_consistent


def test_zone_normalizes_identifier_tuples() -> None:
    zone = Zone(zone_id="z1", name="North", meter_ids=("b", "a", "b"), substation_ids=("s2", "s1"))
    assert zone.meter_ids == ("a", "b")
    assert zone.substation_ids == ("s1", "s2")
    assert zone.meter_count == 2
    with pytest.raises(ValueError):
        Zone(zone_id="", name="nameless")


def test_geo_bounds() -> None:
    bounds = GeoBounds(min_lat=10.0, min_lng=20.0, max_lat=12.0, max_lng=24.0)
    assert bounds.contains(11.0, 22.0)
    assert bounds.contains(10.0, 24.0)
    assert not bounds.contains(9.9, 22.0)
    assert bounds.center == (11.0, 22.0)
    with pytest.raises(ValueError):
        GeoBounds(min_lat=12.0, min_lng=20.0, max_lat=10.0, max_lng=24.0)
    with pytest.raises(ValueError):
        GeoBounds(min_lat=0.0, min_lng=-181.0, max_lat=1.0, max_lng=0.0)
