# tests/integration/repositories/test_sqlalchemy_repositories.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""SQLAlchemy adapters against a real (SQLite) database."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest
from recon_testkit import NOW, WINDOW_END, WINDOW_START, make_result
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gridrecon_api.adapters.repositories.grid_repository import (
    SqlAlchemyReadingStore,
    SqlAlchemyTopologyProvider,
)
from gridrecon_api.adapters.uow.sqlalchemy_uow import SqlAlchemyUnitOfWork
from gridrecon_api.domain.entities.audit_ticket import (
    AuditTicket,
    SuspectedLocation,
    TicketEvidence,
)
from gridrecon_api.domain.entities.reconciliation import (
    ReconciliationReport,
    ZoneReconciliationEntry,
)
from gridrecon_api.domain.enums.audit_ticket import TicketOrigin, TicketStatus
from gridrecon_api.domain.enums.grid import EntityKind, ReadingKind
from gridrecon_api.domain.enums.reconciliation import (
    RunStatus,
    SeverityTier,
    TicketAction,
    ZoneRunStatus,
)
from gridrecon_api.domain.exceptions.audit_ticket import ConcurrentTicketConflictError
from gridrecon_api.domain.exceptions.reconciliation import ZoneNotFoundError
from gridrecon_api.domain.interfaces.repositories.audit_tickets_repository import (
    AuditTicketsRepository,
)
from gridrecon_api.domain.interfaces.repositories.reconciliation_reports_repository import (
    ReconciliationReportsRepository,
)
from gridrecon_api.domain.services.ticket_state_machine import (
    apply_transition,
    link_evidence,
    open_ticket,
    ticket_number_for,
)
from gridrecon_api.infrastructure.database.models.grid import (
    EnergyReading,
    GridMeter,
    GridZone,
    GridZoneMeter,
    GridZoneSubstation,
)

Maker = async_sessionmaker[AsyncSession]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _seed_grid(maker: Maker) -> None:
    async with maker() as session:
        session.add_all(
            [
                GridZone(
                    zone_id="z-north",
                    name="North",
                    min_lat=9.0,
                    min_lng=-14.0,
                    max_lat=10.0,
                    max_lng=-13.0,
                ),
                GridZone(zone_id="z-east", name="East"),
            ]
        )
        session.add_all(GridMeter(meter_id=m) for m in ("m1", "m2", "m3", "m-orphan"))
        session.add_all(
            [
                GridZoneMeter(zone_id="z-north", meter_id="m2"),
                GridZoneMeter(zone_id="z-north", meter_id="m1"),
                GridZoneMeter(zone_id="z-east", meter_id="m3"),
                GridZoneSubstation(zone_id="z-north", substation_id="s1"),
                GridZoneSubstation(zone_id="z-east", substation_id="s2"),
            ]
        )
        await session.commit()


def _reading(entity_id: str, kind: EntityKind, hours: int, qty: str) -> EnergyReading:
    return EnergyReading(
        entity_id=entity_id,
        entity_kind=kind.value,
        kind=ReadingKind.INTERVAL.value,
        timestamp=WINDOW_START + timedelta(hours=hours),
        quantity_kwh=Decimal(qty),
    )


def _evidence(output: str, consumption: str, *, evidence_id: str, day: int = 0) -> TicketEvidence:
    result = make_result(
        "z-north",
        output,
        consumption,
        severity=SeverityTier.CRITICAL,
        suspect=True,
        window_start=WINDOW_START + timedelta(days=day),
        window_end=WINDOW_END + timedelta(days=day),
    )
    return TicketEvidence.from_result(
        result,
        evidence_id=evidence_id,
        run_id=f"run-{evidence_id}",
        tariff_rate=Decimal("0.15"),
        recorded_at=NOW + timedelta(days=day),
    )


def _ticket(ticket_id: str, zone_id: str = "z-north", *, sequence: int = 1) -> AuditTicket:
    return open_ticket(
        ticket_id=ticket_id,
        ticket_number=ticket_number_for(sequence),
        zone_id=zone_id,
        zone_name="North",
        evidence=_evidence("1000", "600", evidence_id=f"{ticket_id}-ev1"),
        origin=TicketOrigin.AUTOMATIC,
        currency="USD",
        created_at=NOW,
        created_by="system",
        suspected_location=SuspectedLocation(latitude=9.5, longitude=-13.5, address="Pole 7"),
        note="opened by run",
    )


def _final_report(
    run_id: str, *, days_ago: int, tiers: dict[str, SeverityTier]
) -> ReconciliationReport:
    completed = NOW - timedelta(days=days_ago)
    start = WINDOW_START - timedelta(days=days_ago)
    end = WINDOW_END - timedelta(days=days_ago)
    running = ReconciliationReport(
        run_id=run_id,
        triggered_by="scheduler",
        window_start=start,
        window_end=end,
        status=RunStatus.RUNNING,
        started_at=completed - timedelta(minutes=5),
    )
    entries = [
        ZoneReconciliationEntry(
            zone_id=zone_id,
            zone_name=zone_id.upper(),
            status=ZoneRunStatus.OK,
            result=make_result(
                zone_id, "2400", "2280", severity=tier, window_start=start, window_end=end
            ),
        )
        for zone_id, tier in tiers.items()
    ]
    entries.append(
        ZoneReconciliationEntry(
            zone_id="z-gap",
            zone_name="GAP",
            status=ZoneRunStatus.INCOMPLETE,
            error_code="DATA_GAP",
            error_message="no readings",
            meter_count=4,
        )
    )
    return running.finalized(
        status=RunStatus.COMPLETED,
        completed_at=completed,
        entries=entries,
        orphaned_meter_ids=["m-orphan"],
    )


async def _store_report(maker: Maker, report: ReconciliationReport) -> None:
    running = replace(report, status=RunStatus.RUNNING, completed_at=None, entries=())
    async with SqlAlchemyUnitOfWork(session_factory=maker) as uow:
        repo = uow.get_repository(ReconciliationReportsRepository)
        await repo.create_running(running)
        await uow.commit()
    async with SqlAlchemyUnitOfWork(session_factory=maker) as uow:
        repo = uow.get_repository(ReconciliationReportsRepository)
        await repo.save_final(report)
        await uow.commit()


# ---------------------------------------------------------------------------
# Topology and readings
# ---------------------------------------------------------------------------


async def test_topology_lists_zones_with_members(session_factory: Maker) -> None:
    await _seed_grid(session_factory)
    topology = SqlAlchemyTopologyProvider(session_factory)

    zones = await topology.list_zones()

    assert [z.zone_id for z in zones] == ["z-east", "z-north"]
    east, north = zones
    assert north.meter_ids == ("m1", "m2")
    assert north.substation_ids == ("s1",)
    assert north.bounds is not None and north.bounds.max_lat == 10.0
    assert east.bounds is None
    assert await topology.list_registered_meter_ids() == frozenset(
        {"m1", "m2", "m3", "m-orphan"}
    )


async def test_topology_get_zone(session_factory: Maker) -> None:
    await _seed_grid(session_factory)
    topology = SqlAlchemyTopologyProvider(session_factory)

    zone = await topology.get_zone("z-east")
    assert (zone.name, zone.meter_ids, zone.substation_ids) == ("East", ("m3",), ("s2",))

    with pytest.raises(ZoneNotFoundError):
        await topology.get_zone("z-missing")


async def test_reading_store_prepends_baseline_to_window(session_factory: Maker) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                _reading("s1", EntityKind.SUBSTATION, 3, "30"),
                _reading("s1", EntityKind.SUBSTATION, 1, "10"),
                _reading("s1", EntityKind.SUBSTATION, 24, "5"),
                _reading("s1", EntityKind.SUBSTATION, 30, "99"),
                _reading("s1", EntityKind.SUBSTATION, -2, "8"),
                _reading("s1", EntityKind.SUBSTATION, -5, "99"),
                _reading("s1", EntityKind.METER, 1, "7"),
                _reading("m1", EntityKind.METER, 2, "1.25"),
            ]
        )
        await session.commit()
    store = SqlAlchemyReadingStore(session_factory)

    feed = await store.get_substation_readings("s1", WINDOW_START, WINDOW_END)
    meter = await store.get_meter_readings("m1", WINDOW_START, WINDOW_END)

    assert [r.quantity_kwh for r in feed] == [Decimal(8), Decimal(10), Decimal(30), Decimal(5)]
    assert feed[0].timestamp == WINDOW_START - timedelta(hours=2)
    assert all(r.entity_kind is EntityKind.SUBSTATION for r in feed)
    assert feed[-1].timestamp == WINDOW_END
    assert feed[0].timestamp.tzinfo is not None
    assert [(r.entity_id, r.quantity_kwh, r.kind) for r in meter] == [
        ("m1", Decimal("1.25"), ReadingKind.INTERVAL)
    ]
    assert await store.get_meter_readings("m-none", WINDOW_START, WINDOW_END) == []


# ---------------------------------------------------------------------------
# Reconciliation reports
# ---------------------------------------------------------------------------


async def test_running_report_then_final_round_trip(session_factory: Maker) -> None:
    report = _final_report(
        "r1", days_ago=0, tiers={"z-a": SeverityTier.WATCH, "z-b": SeverityTier.NORMAL}
    )
    running = replace(report, status=RunStatus.RUNNING, completed_at=None, entries=())

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.get_repository(ReconciliationReportsRepository)
        await repo.create_running(running)
        await uow.commit()

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.get_repository(ReconciliationReportsRepository)
        stored = await repo.get("r1")
        assert stored is not None
        assert stored.status is RunStatus.RUNNING
        assert stored.entries == ()
        with pytest.raises(ValueError, match="finalized"):
            await repo.save_final(running)
        await repo.save_final(report)
        await uow.commit()

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        loaded = await uow.get_repository(ReconciliationReportsRepository).get("r1")

    assert loaded is not None
    assert loaded.status is RunStatus.COMPLETED
    assert loaded.completed_at == NOW
    assert loaded.orphaned_meter_ids == ("m-orphan",)
    assert [e.zone_id for e in loaded.entries] == ["z-a", "z-b", "z-gap"]
    first = loaded.entries[0]
    assert first.result is not None
    assert first.result.delta_kwh == Decimal(120)
    assert first.result.delta_ratio == Decimal("0.05")
    assert first.result.severity is SeverityTier.WATCH
    assert first.ticket_action is TicketAction.NONE
    gap = loaded.entries[2]
    assert gap.result is None
    assert (gap.status, gap.error_code) == (ZoneRunStatus.INCOMPLETE, "DATA_GAP")
    assert gap.meter_count == 4
    assert loaded.total_delta_kwh == report.total_delta_kwh


async def test_unknown_report_is_none(session_factory: Maker) -> None:
    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        assert await uow.get_repository(ReconciliationReportsRepository).get("nope") is None


async def test_history_is_newest_first_per_zone(session_factory: Maker) -> None:
    await _store_report(
        session_factory, _final_report("r-old", days_ago=3, tiers={"z-a": SeverityTier.NORMAL})
    )
    await _store_report(
        session_factory,
        _final_report(
            "r-mid", days_ago=2, tiers={"z-a": SeverityTier.WATCH, "z-b": SeverityTier.ELEVATED}
        ),
    )
    await _store_report(
        session_factory, _final_report("r-new", days_ago=1, tiers={"z-a": SeverityTier.WATCH})
    )

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.get_repository(ReconciliationReportsRepository)
        history = await repo.list_recent_entries(["z-a", "z-b"], per_zone=2)
        without_newest = await repo.list_recent_entries(
            ["z-a"], exclude_run_id="r-new", per_zone=5
        )
        latest = await repo.latest_entries_by_zone()
        assert await repo.list_recent_entries([], per_zone=2) == {}

    tiers_a = [e.result.severity for e in history["z-a"]]  # type: ignore[union-attr]
    assert tiers_a == [SeverityTier.WATCH, SeverityTier.WATCH]
    assert len(history["z-b"]) == 1
    assert [e.result.severity for e in without_newest["z-a"]] == [  # type: ignore[union-attr]
        SeverityTier.WATCH,
        SeverityTier.NORMAL,
    ]

    by_zone = {entry.zone_id: (report.run_id, entry) for report, entry in latest}
    assert by_zone["z-a"][0] == "r-new"
    assert by_zone["z-b"][0] == "r-mid"
    assert by_zone["z-gap"][0] == "r-new"
    report, _ = next(pair for pair in latest if pair[1].zone_id == "z-a")
    assert report.entries == ()
    assert report.window_start == WINDOW_START - timedelta(days=1)


# ---------------------------------------------------------------------------
# Audit tickets
# ---------------------------------------------------------------------------


async def test_ticket_round_trip(session_factory: Maker) -> None:
    ticket = _ticket(str(uuid.UUID(int=42)), sequence=42)

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        await uow.get_repository(AuditTicketsRepository).add(ticket)
        await uow.commit()

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.get_repository(AuditTicketsRepository)
        loaded = await repo.get(ticket.ticket_id)
        active = await repo.get_active_for_zone("z-north")
        assert await repo.get("missing") is None
        assert await repo.get_active_for_zone("z-east") is None

    assert loaded is not None and active is not None
    assert active.ticket_id == ticket.ticket_id
    assert loaded.ticket_number == "AUD-000042"
    assert loaded.status is TicketStatus.OPEN
    assert loaded.origin is TicketOrigin.AUTOMATIC
    assert loaded.estimated_loss == Decimal("60.00")
    assert loaded.delta_kwh == Decimal(400)
    assert loaded.delta_ratio == Decimal("0.4")
    assert loaded.severity is SeverityTier.CRITICAL
    assert loaded.suspected_location == SuspectedLocation(9.5, -13.5, "Pole 7")
    assert (loaded.window_start, loaded.window_end) == (WINDOW_START, WINDOW_END)
    assert [e.evidence_id for e in loaded.evidence] == [ticket.evidence[0].evidence_id]
    assert [n.body for n in loaded.notes] == ["opened by run"]
    assert loaded.version == 1


async def test_update_appends_evidence_and_checks_version(session_factory: Maker) -> None:
    ticket = _ticket("t-1")
    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        await uow.get_repository(AuditTicketsRepository).add(ticket)
        await uow.commit()

    linked = link_evidence(
        ticket, _evidence("1000", "200", evidence_id="t-1-ev2", day=1), at=NOW + timedelta(days=1)
    )
    linked = replace(linked, version=2)

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.get_repository(AuditTicketsRepository)
        assert await repo.update(linked, expected_version=1) is True
        assert await repo.update(linked, expected_version=1) is False
        await uow.commit()

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        loaded = await uow.get_repository(AuditTicketsRepository).get("t-1")

    assert loaded is not None
    assert loaded.version == 2
    assert loaded.estimated_loss == Decimal("120.00")
    assert loaded.window_end == WINDOW_END + timedelta(days=1)
    assert [e.evidence_id for e in loaded.evidence] == ["t-1-ev1", "t-1-ev2"]


async def test_resolved_ticket_frees_the_zone(session_factory: Maker) -> None:
    ticket = _ticket("t-1")
    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        await uow.get_repository(AuditTicketsRepository).add(ticket)
        await uow.commit()

    reviewed = apply_transition(ticket, TicketStatus.IN_REVIEW, None, at=NOW)
    closed = apply_transition(
        reviewed, TicketStatus.RESOLVED_CONFIRMED, "bypass found", at=NOW, actor="ops"
    )
    closed = replace(closed, version=2)

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.get_repository(AuditTicketsRepository)
        assert await repo.update(closed, expected_version=1)
        await repo.add(_ticket("t-2", sequence=2))
        await uow.commit()

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.get_repository(AuditTicketsRepository)
        active = await repo.get_active_for_zone("z-north")
        old = await repo.get("t-1")
        resolved = await repo.list_tickets(status=TicketStatus.RESOLVED_CONFIRMED)
        everything = await repo.list_tickets(limit=10)

    assert active is not None and active.ticket_id == "t-2"
    assert old is not None
    assert old.resolution_notes == "bypass found"
    assert old.resolved_at == NOW
    assert old.notes[-1].status_from is TicketStatus.IN_REVIEW
    assert old.notes[-1].status_to is TicketStatus.RESOLVED_CONFIRMED
    assert [t.ticket_id for t in resolved] == ["t-1"]
    assert {t.ticket_id for t in everything} == {"t-1", "t-2"}


async def test_second_active_ticket_for_zone_conflicts(session_factory: Maker) -> None:
    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        await uow.get_repository(AuditTicketsRepository).add(_ticket("t-1"))
        await uow.commit()

    with pytest.raises(ConcurrentTicketConflictError):
        async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
            await uow.get_repository(AuditTicketsRepository).add(_ticket("t-2", sequence=2))
            await uow.commit()

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        tickets = await uow.get_repository(AuditTicketsRepository).list_tickets()
    assert [t.ticket_id for t in tickets] == ["t-1"]


async def test_ticket_sequence_is_monotonic_and_numbers_unique(session_factory: Maker) -> None:
    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.get_repository(AuditTicketsRepository)
        first = await repo.next_ticket_sequence()
        second = await repo.next_ticket_sequence()
        await repo.add(_ticket("t-1", sequence=first))
        await uow.commit()

    async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
        third = await uow.get_repository(AuditTicketsRepository).next_ticket_sequence()
        await uow.commit()

    assert (first, second, third) == (1, 2, 3)

    with pytest.raises(ConcurrentTicketConflictError):
        async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
            await uow.get_repository(AuditTicketsRepository).add(
                _ticket("t-2", "z-east", sequence=first)
            )
            await uow.commit()
