# src/gridrecon_api/infrastructure/database/models/grid.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Grid topology and reading models: zones, meters, memberships, readings.

These tables are owned by network administration and the metering feeds;
the reconciliation engine only reads them.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gridrecon_api.infrastructure.database.models.base import (
    KWH,
    Base,
    UTCDateTime,
    now_utc,
    qualified,
)


class GridZone(Base):
    """Distribution zone with optional geographic bounds."""

    __tablename__ = "grid_zones"

    zone_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    min_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=now_utc)


class GridMeter(Base):
    """Metering registry entry; a meter may exist before it is assigned a zone."""

    __tablename__ = "grid_meters"

    meter_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    registered_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=now_utc)


class GridZoneMeter(Base):
    """Zone membership of a meter.

    The composite key allows a meter to appear under several zones; such
    rows are topology errors detected at run time, not rejected here.
    """

    __tablename__ = "grid_zone_meters"

    zone_id: Mapped[str] = mapped_column(
        String(64), ForeignKey(qualified("grid_zones.zone_id")), primary_key=True
    )
    meter_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)


class GridZoneSubstation(Base):
    """Substation supplying a zone."""

    __tablename__ = "grid_zone_substations"

    zone_id: Mapped[str] = mapped_column(
        String(64), ForeignKey(qualified("grid_zones.zone_id")), primary_key=True
    )
    substation_id: Mapped[str] = mapped_column(String(64), primary_key=True)


class EnergyReading(Base):
    """One timestamped reading from a meter or a substation."""

    __tablename__ = "energy_readings"
    __table_args__ = (
        Index("ix_energy_readings_entity_ts", "entity_kind", "entity_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    quantity_kwh: Mapped[Decimal] = mapped_column(KWH, nullable=False)
