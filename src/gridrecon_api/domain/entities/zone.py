# src/gridrecon_api/domain/entities/zone.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Distribution zone entity.

Purpose:
    Represent a partition of the distribution network: its supplying
    substations, its member meters and the geographic box used to map
    suspect areas.

Layer:
    domain

Notes:
    - Zones are read-only to this service; topology administration is external.
    - Identifier tuples are normalized to sorted, de-duplicated order so two
      zones built from the same rows compare equal.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class GeoBounds:
    """Axis-aligned latitude/longitude bounding box."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def __post_init__(self) -> None:
        """Enforce coordinate invariants."""
        if not (-90.0 <= self.min_lat <= self.max_lat <= 90.0):
            raise ValueError("GeoBounds latitudes must satisfy -90 <= min_lat <= max_lat <= 90.")
        if not (-180.0 <= self.min_lng <= self.max_lng <= 180.0):
            raise ValueError(
                "GeoBounds longitudes must satisfy -180 <= min_lng <= max_lng <= 180."
            )

    def contains(self, lat: float, lng: float) -> bool:
        """Return True when the point lies inside (or on) the box."""
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    @property
    def center(self) -> tuple[float, float]:
        """Return the (lat, lng) midpoint of the box."""
        return ((self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2)


@dataclass(frozen=True, slots=True)
class Zone:
    """Distribution zone with its metering topology.

    Attributes:
        zone_id: Stable zone identifier.
        name: Display name.
        meter_ids: Member meter identifiers.
        substation_ids: Supplying substation (transformer) identifiers.
        bounds: Optional geographic bounding box.
    """

    zone_id: str
    name: str
    meter_ids: tuple[str, ...] = field(default=())
    substation_ids: tuple[str, ...] = field(default=())
    bounds: GeoBounds | None = None

    def __post_init__(self) -> None:
        """Normalize identifier collections."""
        if not self.zone_id:
            raise ValueError("zone_id must be non-empty.")
        object.__setattr__(self, "meter_ids", tuple(sorted(set(self.meter_ids))))
        object.__setattr__(self, "substation_ids", tuple(sorted(set(self.substation_ids))))

    @property
    def meter_count(self) -> int:
        """Return the number of member meters."""
        return len(self.meter_ids)
