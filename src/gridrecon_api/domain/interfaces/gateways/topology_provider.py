# src/gridrecon_api/domain/interfaces/gateways/topology_provider.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Zone topology provider interface.

Purpose:
    Read-only access to the zone hierarchy: zones, their member meters and
    their supplying substations.

Layer:
    domain/interfaces/gateways

Notes:
    Implementations must be safe to call concurrently and must translate
    storage failures into :class:`ReadingStoreUnavailableError`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from gridrecon_api.domain.entities.zone import Zone


class TopologyProvider(Protocol):
    """Protocol for zone topology sources."""

    async def list_zones(self) -> Sequence[Zone]:
        """Return every zone, ordered by zone id."""
        ...

    async def get_zone(self, zone_id: str) -> Zone:
        """Return one zone.

        Raises:
            ZoneNotFoundError: If the zone does not exist.
        """
        ...

    async def list_registered_meter_ids(self) -> frozenset[str]:
        """Return every meter known to the metering registry."""
        ...
