# tests/fixtures/recon_testkit.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""In-memory doubles and builders shared by the reconciliation tests.

The fakes implement the domain ports by duck typing; the units of work expose
``audit_tickets_repo`` / ``reconciliation_reports_repo`` attributes, which the
application services resolve before falling back to ``get_repository``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from gridrecon_api.domain.entities.audit_ticket import AuditTicket
from gridrecon_api.domain.entities.reading import Reading
from gridrecon_api.domain.entities.reconciliation import (
    ReconciliationReport,
    ReconciliationResult,
    ZoneReconciliationEntry,
)
from gridrecon_api.domain.entities.zone import GeoBounds, Zone
from gridrecon_api.domain.enums.audit_ticket import TicketStatus
from gridrecon_api.domain.enums.grid import EntityKind, ReadingKind
from gridrecon_api.domain.enums.reconciliation import RunStatus, SeverityTier
from gridrecon_api.domain.exceptions.audit_ticket import ConcurrentTicketConflictError
from gridrecon_api.domain.exceptions.reconciliation import (
    ReadingStoreUnavailableError,
    ZoneNotFoundError,
)

WINDOW_START = datetime(2026, 10, 18, tzinfo=UTC)
WINDOW_END = WINDOW_START + timedelta(hours=24)
NOW = WINDOW_END + timedelta(hours=1)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_zone(
    zone_id: str,
    *,
    meters: Iterable[str] = ("m1",),
    substations: Iterable[str] = ("s1",),
    name: str | None = None,
    bounds: GeoBounds | None = None,
) -> Zone:
    return Zone(
        zone_id=zone_id,
        name=name or f"Zone {zone_id}",
        meter_ids=tuple(meters),
        substation_ids=tuple(substations),
        bounds=bounds,
    )


def interval_series(
    entity_id: str,
    entity_kind: EntityKind,
    total_kwh: Decimal | int | str,
    *,
    start: datetime = WINDOW_START,
    end: datetime = WINDOW_END,
    step: timedelta = timedelta(hours=1),
) -> list[Reading]:
    """Hourly interval samples covering ``[start, end)`` and summing to ``total_kwh``."""
    stamps: list[datetime] = []
    ts = start
    while ts < end:
        stamps.append(ts)
        ts += step
    total = Decimal(total_kwh)
    share = total / len(stamps)
    quantities = [share] * (len(stamps) - 1)
    quantities.append(total - sum(quantities, start=Decimal(0)))
    return [
        Reading(
            entity_id=entity_id,
            entity_kind=entity_kind,
            timestamp=stamp,
            quantity_kwh=qty,
            kind=ReadingKind.INTERVAL,
        )
        for stamp, qty in zip(stamps, quantities, strict=True)
    ]


def make_result(
    zone_id: str,
    output: Decimal | int | str,
    consumption: Decimal | int | str,
    *,
    severity: SeverityTier | None = None,
    suspect: bool = False,
    window_start: datetime = WINDOW_START,
    window_end: datetime = WINDOW_END,
) -> ReconciliationResult:
    out = Decimal(output)
    cons = Decimal(consumption)
    delta = out - cons
    return ReconciliationResult(
        zone_id=zone_id,
        window_start=window_start,
        window_end=window_end,
        output_kwh=out,
        consumption_kwh=cons,
        delta_kwh=delta,
        delta_ratio=None if out == 0 else delta / out,
        computed_at=NOW,
        severity=severity,
        suspect=suspect,
    )


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


# ---------------------------------------------------------------------------
# Gateways
# ---------------------------------------------------------------------------


class StaticTopology:
    """Topology provider over a fixed list of zones."""

    def __init__(
        self,
        zones: Sequence[Zone],
        registered_meter_ids: Iterable[str] | None = None,
        *,
        fail_with: Exception | None = None,
    ) -> None:
        self.zones = list(zones)
        if registered_meter_ids is None:
            registered_meter_ids = {m for z in self.zones for m in z.meter_ids}
        self.registered = frozenset(registered_meter_ids)
        self.fail_with = fail_with

    async def list_zones(self) -> Sequence[Zone]:
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.zones)

    async def get_zone(self, zone_id: str) -> Zone:
        for zone in self.zones:
            if zone.zone_id == zone_id:
                return zone
        raise ZoneNotFoundError(f"Zone {zone_id!r} does not exist.", details={"zone_id": zone_id})

    async def list_registered_meter_ids(self) -> frozenset[str]:
        return self.registered


class InMemoryReadingStore:
    """Reading store keyed by entity; can fail or stall selected entities."""

    def __init__(self) -> None:
        self._readings: dict[tuple[EntityKind, str], list[Reading]] = {}
        self.unavailable: set[str] = set()
        self.delays: dict[str, float] = {}
        self.calls: list[str] = []

    def add(self, readings: Iterable[Reading]) -> None:
        for r in readings:
            self._readings.setdefault((r.entity_kind, r.entity_id), []).append(r)

    def feed_zone(
        self,
        zone: Zone,
        *,
        output: Decimal | int | str,
        consumption: Mapping[str, Decimal | int | str] | None = None,
    ) -> None:
        """Split ``output`` evenly over the zone substations; meters get their totals."""
        share = Decimal(output) / len(zone.substation_ids)
        for substation_id in zone.substation_ids:
            self.add(interval_series(substation_id, EntityKind.SUBSTATION, share))
        for meter_id, total in (consumption or {}).items():
            self.add(interval_series(meter_id, EntityKind.METER, total))

    async def _get(
        self, kind: EntityKind, entity_id: str, start: datetime, end: datetime
    ) -> Sequence[Reading]:
        self.calls.append(entity_id)
        delay = self.delays.get(entity_id)
        if delay:
            await asyncio.sleep(delay)
        if entity_id in self.unavailable:
            raise ReadingStoreUnavailableError(f"Reading store unavailable for {entity_id}.")
        series = sorted(self._readings.get((kind, entity_id), []), key=lambda r: r.timestamp)
        before = [r for r in series if r.timestamp < start]
        return before[-1:] + [r for r in series if start <= r.timestamp <= end]

    async def get_substation_readings(
        self, substation_id: str, start: datetime, end: datetime
    ) -> Sequence[Reading]:
        return await self._get(EntityKind.SUBSTATION, substation_id, start, end)

    async def get_meter_readings(
        self, meter_id: str, start: datetime, end: datetime
    ) -> Sequence[Reading]:
        return await self._get(EntityKind.METER, meter_id, start, end)


class RecordingNotifier:
    """Notification gateway that records tickets and optionally fails."""

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.sent: list[AuditTicket] = []
        self.fail_with = fail_with

    async def notify_critical_ticket(self, ticket: AuditTicket) -> None:
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(ticket)


# ---------------------------------------------------------------------------
# Repositories and units of work
# ---------------------------------------------------------------------------


class InMemoryReportsRepository:
    """Report store honouring the history ordering of the SQL adapter."""

    def __init__(self) -> None:
        self.reports: dict[str, ReconciliationReport] = {}
        self.fail_on_save: Exception | None = None
        self.fail_on_history: Exception | None = None

    def seed(self, report: ReconciliationReport) -> None:
        self.reports[report.run_id] = report

    async def create_running(self, report: ReconciliationReport) -> None:
        self.reports[report.run_id] = report

    async def save_final(self, report: ReconciliationReport) -> None:
        if self.fail_on_save is not None:
            raise self.fail_on_save
        if not report.is_final:
            raise ValueError("Only finalized reports can be saved.")
        self.reports[report.run_id] = report

    async def get(self, run_id: str) -> ReconciliationReport | None:
        return self.reports.get(run_id)

    def _final_newest_first(self) -> list[ReconciliationReport]:
        final = [r for r in self.reports.values() if r.status is not RunStatus.RUNNING]
        return sorted(final, key=lambda r: (r.completed_at, r.run_id), reverse=True)

    async def list_recent_entries(
        self,
        zone_ids: Iterable[str],
        *,
        exclude_run_id: str | None = None,
        per_zone: int = 2,
    ) -> Mapping[str, Sequence[ZoneReconciliationEntry]]:
        if self.fail_on_history is not None:
            raise self.fail_on_history
        wanted = set(zone_ids)
        history: dict[str, list[ZoneReconciliationEntry]] = {}
        for report in self._final_newest_first():
            if report.run_id == exclude_run_id:
                continue
            for entry in report.entries:
                if entry.zone_id not in wanted:
                    continue
                bucket = history.setdefault(entry.zone_id, [])
                if len(bucket) < per_zone:
                    bucket.append(entry)
        return history

    async def latest_entries_by_zone(
        self,
    ) -> Sequence[tuple[ReconciliationReport, ZoneReconciliationEntry]]:
        seen: set[str] = set()
        rows: list[tuple[ReconciliationReport, ZoneReconciliationEntry]] = []
        for report in self._final_newest_first():
            for entry in report.entries:
                if entry.zone_id in seen:
                    continue
                seen.add(entry.zone_id)
                rows.append((report, entry))
        return rows


class InMemoryTicketsRepository:
    """Ticket store enforcing one active ticket per zone and version checks."""

    def __init__(self) -> None:
        self.tickets: dict[str, AuditTicket] = {}
        self.read_delay_s: float = 0.0
        self.sequence = 0

    async def add(self, ticket: AuditTicket) -> None:
        if any(t.ticket_number == ticket.ticket_number for t in self.tickets.values()):
            raise ConcurrentTicketConflictError(ticket.zone_id, waited_s=0.0)
        existing = await self.get_active_for_zone(ticket.zone_id)
        if existing is not None and ticket.is_active:
            raise ConcurrentTicketConflictError(ticket.zone_id, waited_s=0.0)
        self.tickets[ticket.ticket_id] = ticket

    async def next_ticket_sequence(self) -> int:
        self.sequence += 1
        return self.sequence

    async def get(self, ticket_id: str) -> AuditTicket | None:
        return self.tickets.get(ticket_id)

    async def get_active_for_zone(self, zone_id: str) -> AuditTicket | None:
        if self.read_delay_s:
            await asyncio.sleep(self.read_delay_s)
        for ticket in self.tickets.values():
            if ticket.zone_id == zone_id and ticket.is_active:
                return ticket
        return None

    async def update(self, ticket: AuditTicket, *, expected_version: int) -> bool:
        stored = self.tickets.get(ticket.ticket_id)
        if stored is None or stored.version != expected_version:
            return False
        self.tickets[ticket.ticket_id] = ticket
        return True

    async def list_tickets(
        self, *, status: TicketStatus | None = None, limit: int = 50
    ) -> list[AuditTicket]:
        items = [t for t in self.tickets.values() if status is None or t.status is status]
        items.sort(key=lambda t: (t.updated_at, t.ticket_id), reverse=True)
        return items[:limit]

    def bump_version(self, ticket_id: str) -> None:
        """Simulate a write by another process."""
        stored = self.tickets[ticket_id]
        self.tickets[ticket_id] = replace(stored, version=stored.version + 1)


class FakeUnitOfWork:
    """Unit of work over in-memory repositories; records commits."""

    def __init__(
        self,
        reports: InMemoryReportsRepository,
        tickets: InMemoryTicketsRepository,
    ) -> None:
        self.reconciliation_reports_repo = reports
        self.audit_tickets_repo = tickets
        self.commits = 0
        self.rollbacks = 0

    async def __aenter__(self) -> FakeUnitOfWork:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is not None:
            await self.rollback()

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    def get_repository(self, repo_type: type[Any]) -> Any:  # pragma: no cover
        raise KeyError(repo_type)


def uow_factory_for(
    reports: InMemoryReportsRepository | None = None,
    tickets: InMemoryTicketsRepository | None = None,
) -> Callable[[], FakeUnitOfWork]:
    reports = reports or InMemoryReportsRepository()
    tickets = tickets or InMemoryTicketsRepository()

    def _factory() -> FakeUnitOfWork:
        return FakeUnitOfWork(reports, tickets)

    return _factory
