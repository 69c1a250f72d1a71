# src/gridrecon_api/adapters/repositories/grid_repository.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Grid topology and reading store (SQLAlchemy).

Purpose:
    Read-only adapters over ``grid_*`` tables and ``energy_readings``
    implementing the :class:`TopologyProvider` and :class:`ReadingStore`
    ports.

Layer:
    adapters/repositories

Notes:
    * The reconciliation fan-out calls these adapters from many zone tasks at
      once, so every call opens its own short-lived session instead of
      sharing the unit of work's session.
    * Connectivity failures surface as ``ReadingStoreUnavailableError`` via
      the base repository instrumentation.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gridrecon_api.adapters.repositories.base_repository import BaseRepository
from gridrecon_api.domain.entities.reading import Reading
from gridrecon_api.domain.entities.zone import GeoBounds, Zone
from gridrecon_api.domain.enums.grid import EntityKind, ReadingKind
from gridrecon_api.domain.exceptions.reconciliation import ZoneNotFoundError
from gridrecon_api.infrastructure.database.models.grid import (
    EnergyReading,
    GridMeter,
    GridZone,
    GridZoneMeter,
    GridZoneSubstation,
)
from gridrecon_api.infrastructure.database.session import get_db_session

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _bounds(row: GridZone) -> GeoBounds | None:
    coords = (row.min_lat, row.min_lng, row.max_lat, row.max_lng)
    if any(c is None for c in coords):
        return None
    return GeoBounds(
        min_lat=float(row.min_lat),  # type: ignore[arg-type]
        min_lng=float(row.min_lng),  # type: ignore[arg-type]
        max_lat=float(row.max_lat),  # type: ignore[arg-type]
        max_lng=float(row.max_lng),  # type: ignore[arg-type]
    )


class _SessionScopedRepository(BaseRepository[object]):
    """Repository that opens one session per operation."""

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory: SessionFactory = session_factory or get_db_session

    @asynccontextmanager
    async def _scoped(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self._instrumented(operation), self._session_factory() as session:
            yield session


class SqlAlchemyTopologyProvider(_SessionScopedRepository):
    """Zone topology backed by ``grid_zones`` and its membership tables."""

    _MODEL_NAME = "grid_zones"

    async def list_zones(self) -> Sequence[Zone]:
        async with self._scoped("list_zones") as session:
            zones = (
                await session.execute(select(GridZone).order_by(GridZone.zone_id.asc()))
            ).scalars().all()
            members = (
                await session.execute(
                    select(GridZoneMeter.zone_id, GridZoneMeter.meter_id).order_by(
                        GridZoneMeter.zone_id, GridZoneMeter.meter_id
                    )
                )
            ).all()
            supplies = (
                await session.execute(
                    select(GridZoneSubstation.zone_id, GridZoneSubstation.substation_id).order_by(
                        GridZoneSubstation.zone_id, GridZoneSubstation.substation_id
                    )
                )
            ).all()

        meters: dict[str, list[str]] = defaultdict(list)
        for zone_id, meter_id in members:
            meters[zone_id].append(meter_id)
        substations: dict[str, list[str]] = defaultdict(list)
        for zone_id, substation_id in supplies:
            substations[zone_id].append(substation_id)

        return [
            Zone(
                zone_id=z.zone_id,
                name=z.name,
                meter_ids=tuple(meters.get(z.zone_id, ())),
                substation_ids=tuple(substations.get(z.zone_id, ())),
                bounds=_bounds(z),
            )
            for z in zones
        ]

    async def get_zone(self, zone_id: str) -> Zone:
        """Return one zone with its members.

        Raises:
            ZoneNotFoundError: If no such zone exists.
        """
        async with self._scoped("get_zone") as session:
            row = (
                await session.execute(select(GridZone).where(GridZone.zone_id == zone_id))
            ).scalars().first()
            if row is None:
                raise ZoneNotFoundError(
                    f"Zone {zone_id!r} does not exist.", details={"zone_id": zone_id}
                )
            meter_ids = (
                await session.execute(
                    select(GridZoneMeter.meter_id)
                    .where(GridZoneMeter.zone_id == zone_id)
                    .order_by(GridZoneMeter.meter_id)
                )
            ).scalars().all()
            substation_ids = (
                await session.execute(
                    select(GridZoneSubstation.substation_id)
                    .where(GridZoneSubstation.zone_id == zone_id)
                    .order_by(GridZoneSubstation.substation_id)
                )
            ).scalars().all()
            return Zone(
                zone_id=row.zone_id,
                name=row.name,
                meter_ids=tuple(meter_ids),
                substation_ids=tuple(substation_ids),
                bounds=_bounds(row),
            )

    async def list_registered_meter_ids(self) -> frozenset[str]:
        async with self._scoped("list_registered_meter_ids") as session:
            ids = (await session.execute(select(GridMeter.meter_id))).scalars().all()
            return frozenset(ids)


class SqlAlchemyReadingStore(_SessionScopedRepository):
    """Time-ordered readings from ``energy_readings``."""

    _MODEL_NAME = "energy_readings"

    async def _readings(
        self, kind: EntityKind, entity_id: str, start: datetime, end: datetime
    ) -> list[Reading]:
        entity = (
            EnergyReading.entity_kind == kind.value,
            EnergyReading.entity_id == entity_id,
        )
        baseline_stmt = (
            select(EnergyReading)
            .where(*entity, EnergyReading.timestamp < start)
            .order_by(EnergyReading.timestamp.desc(), EnergyReading.id.desc())
            .limit(1)
        )
        window_stmt = (
            select(EnergyReading)
            .where(*entity, EnergyReading.timestamp >= start, EnergyReading.timestamp <= end)
            .order_by(EnergyReading.timestamp.asc(), EnergyReading.id.asc())
        )
        async with self._scoped(f"get_{kind.value.lower()}_readings") as session:
            baseline = (await session.execute(baseline_stmt)).scalars().first()
            rows = (await session.execute(window_stmt)).scalars().all()
            if baseline is not None:
                rows = [baseline, *rows]
            return [
                Reading(
                    entity_id=r.entity_id,
                    entity_kind=kind,
                    timestamp=r.timestamp,
                    quantity_kwh=r.quantity_kwh,
                    kind=ReadingKind(r.kind),
                )
                for r in rows
            ]

    async def get_substation_readings(
        self, substation_id: str, start: datetime, end: datetime
    ) -> Sequence[Reading]:
        return await self._readings(EntityKind.SUBSTATION, substation_id, start, end)

    async def get_meter_readings(
        self, meter_id: str, start: datetime, end: datetime
    ) -> Sequence[Reading]:
        return await self._readings(EntityKind.METER, meter_id, start, end)


__all__ = ["SessionFactory", "SqlAlchemyReadingStore", "SqlAlchemyTopologyProvider"]
