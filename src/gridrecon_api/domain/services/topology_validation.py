# src/gridrecon_api/domain/services/topology_validation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Zone topology validation.

Purpose:
    Check that every meter belongs to exactly one zone. Conflicts do not
    abort a run: meters assigned to several zones are excluded from every
    zone total, and those zones are reported as degraded. Registered meters
    assigned to no zone are reported as orphans.

Layer:
    domain/services
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from gridrecon_api.domain.entities.zone import Zone
from gridrecon_api.domain.exceptions.reconciliation import TopologyInconsistencyError


@dataclass(frozen=True, slots=True)
class TopologyAudit:
    """Outcome of a topology check.

    Attributes:
        excluded_meter_ids: Meters to leave out of every zone total.
        degraded_zone_ids: Zones whose totals lost at least one meter.
        orphaned_meter_ids: Registered meters assigned to no zone.
        issues: One inconsistency per offending meter.
    """

    excluded_meter_ids: frozenset[str] = frozenset()
    degraded_zone_ids: frozenset[str] = frozenset()
    orphaned_meter_ids: frozenset[str] = frozenset()
    issues: tuple[TopologyInconsistencyError, ...] = field(default=())

    @property
    def is_consistent(self) -> bool:
        """Return True when no issue was found."""
        return not self.issues

    def reasons_for(self, zone_id: str) -> tuple[str, ...]:
        """Return human-readable degradation reasons for ``zone_id``."""
        return tuple(issue.message for issue in self.issues if zone_id in issue.zone_ids)


def audit_topology(
    zones: Sequence[Zone],
    registered_meter_ids: Iterable[str] | None = None,
) -> TopologyAudit:
    """Validate the one-zone-per-meter invariant.

    Args:
        zones: All zones of the network.
        registered_meter_ids: Every meter known to the metering registry, if
            the provider exposes it. Used to detect orphans.

    Returns:
        The audit outcome; deterministic for a given input.
    """
    memberships: dict[str, list[str]] = defaultdict(list)
    for zone in zones:
        for meter_id in zone.meter_ids:
            memberships[meter_id].append(zone.zone_id)

    issues: list[TopologyInconsistencyError] = []
    excluded: set[str] = set()
    degraded: set[str] = set()
    for meter_id in sorted(memberships):
        zone_ids = memberships[meter_id]
        if len(zone_ids) > 1:
            owners = tuple(sorted(zone_ids))
            issues.append(TopologyInconsistencyError(meter_id, owners))
            excluded.add(meter_id)
            degraded.update(owners)

    orphans: set[str] = set()
    if registered_meter_ids is not None:
        orphans = {m for m in registered_meter_ids if m not in memberships}
        issues.extend(TopologyInconsistencyError(m, ()) for m in sorted(orphans))

    return TopologyAudit(
        excluded_meter_ids=frozenset(excluded),
        degraded_zone_ids=frozenset(degraded),
        orphaned_meter_ids=frozenset(orphans),
        issues=tuple(issues),
    )


__all__ = ["TopologyAudit", "audit_topology"]
