# tests/integration/routers/test_audit_tickets_router.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
from __future__ import annotations

from typing import Any

import pytest
from recon_http import Api, SeedGrid
from recon_testkit import WINDOW_END, WINDOW_START

TICKETS_URL = "/v1/reconciliation/tickets"


def _manual(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "zone_id": "z-a",
        "window_start": WINDOW_START.isoformat(),
        "window_end": WINDOW_END.isoformat(),
        "created_by": "ops-1",
        "delta_kwh": "400",
        "severity": "critical",
        "suspected_location": {"latitude": 9.5, "longitude": -13.5, "address": "Pole 12"},
        "notes": "Tamper report from field crew",
    }
    body.update(overrides)
    return body


async def _open(api: Api, **overrides: Any) -> dict[str, Any]:
    resp = await api.client.post(TICKETS_URL, json=_manual(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]  # type: ignore[no-any-return]


async def test_manual_ticket_is_created(api: Api, seed_grid: SeedGrid) -> None:
    await seed_grid()

    outcome = await _open(api)

    assert outcome["action"] == "created"
    ticket = outcome["ticket"]
    assert ticket["ticket_number"].startswith("AUD-")
    assert ticket["status"] == "OPEN"
    assert ticket["origin"] == "MANUAL"
    assert ticket["zone_name"] == "Zone z-a"
    assert ticket["estimated_loss"] == "80.00"
    assert ticket["currency"] == "USD"
    assert ticket["suspected_location"]["address"] == "Pole 12"
    assert [n["body"] for n in ticket["notes"]] == ["Tamper report from field crew"]
    assert ticket["evidence"][0]["run_id"] is None
    assert ticket["version"] == 1


async def test_second_manual_ticket_links_into_active_one(
    api: Api, seed_grid: SeedGrid
) -> None:
    await seed_grid()
    first = await _open(api)

    second = await _open(api, delta_kwh="900", notes=None)

    assert second["action"] == "linked"
    assert second["ticket"]["ticket_id"] == first["ticket"]["ticket_id"]
    assert second["ticket"]["estimated_loss"] == "180.00"
    assert len(second["ticket"]["evidence"]) == 2
    assert second["ticket"]["version"] == 2


async def test_manual_ticket_rejects_location_outside_zone(
    api: Api, seed_grid: SeedGrid
) -> None:
    await seed_grid()

    resp = await api.client.post(
        TICKETS_URL, json=_manual(suspected_location={"latitude": 48.8, "longitude": 2.3})
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_TICKET"


async def test_manual_ticket_for_unknown_zone_is_404(api: Api, seed_grid: SeedGrid) -> None:
    await seed_grid()

    resp = await api.client.post(TICKETS_URL, json=_manual(zone_id="z-nowhere"))

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "ZONE_NOT_FOUND"


@pytest.mark.parametrize(
    "overrides",
    [
        {"window_end": WINDOW_START.isoformat()},
        {"window_start": "2026-10-18T00:00:00"},
        {"created_by": ""},
        {"suspected_location": {"latitude": 91, "longitude": 0}},
    ],
)
async def test_manual_ticket_body_validation(api: Api, overrides: dict[str, Any]) -> None:
    resp = await api.client.post(TICKETS_URL, json=_manual(**overrides))

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_ticket_lifecycle(api: Api, seed_grid: SeedGrid) -> None:
    await seed_grid()
    ticket_id = (await _open(api))["ticket"]["ticket_id"]
    url = f"{TICKETS_URL}/{ticket_id}"

    reviewed = await api.client.put(url, json={"status": "IN_REVIEW", "actor": "auditor-3"})
    assert reviewed.status_code == 200
    assert reviewed.json()["data"]["status"] == "IN_REVIEW"

    no_notes = await api.client.put(url, json={"status": "RESOLVED_CONFIRMED"})
    assert no_notes.status_code == 409
    assert no_notes.json()["error"]["code"] == "INVALID_TRANSITION"

    resolved = await api.client.put(
        url,
        json={
            "status": "RESOLVED_CONFIRMED",
            "notes": "Illegal connection removed",
            "expected_status": "IN_REVIEW",
            "actor": "auditor-3",
        },
    )
    assert resolved.status_code == 200
    data = resolved.json()["data"]
    assert data["status"] == "RESOLVED_CONFIRMED"
    assert data["resolution_notes"] == "Illegal connection removed"
    assert data["resolved_at"] is not None
    assert data["notes"][-1]["status_from"] == "IN_REVIEW"
    assert data["notes"][-1]["status_to"] == "RESOLVED_CONFIRMED"

    reopened = await api.client.put(url, json={"status": "IN_REVIEW"})
    assert reopened.status_code == 409

    fetched = (await api.client.get(url)).json()["data"]
    assert fetched["status"] == "RESOLVED_CONFIRMED"


async def test_stale_expected_status_conflicts(api: Api, seed_grid: SeedGrid) -> None:
    await seed_grid()
    ticket_id = (await _open(api))["ticket"]["ticket_id"]

    resp = await api.client.put(
        f"{TICKETS_URL}/{ticket_id}",
        json={"status": "CANCELLED", "expected_status": "IN_REVIEW"},
    )

    assert resp.status_code == 409
    assert "re-read" in resp.json()["error"]["message"]


async def test_notes_are_appended(api: Api, seed_grid: SeedGrid) -> None:
    await seed_grid()
    ticket_id = (await _open(api, notes=None))["ticket"]["ticket_id"]

    resp = await api.client.post(
        f"{TICKETS_URL}/{ticket_id}/notes", json={"body": "Meter sealed", "author": "tech-9"}
    )

    assert resp.status_code == 200
    notes = resp.json()["data"]["notes"]
    assert [(n["body"], n["author"]) for n in notes] == [("Meter sealed", "tech-9")]


async def test_unknown_ticket_is_404(api: Api) -> None:
    for resp in (
        await api.client.get(f"{TICKETS_URL}/missing"),
        await api.client.put(f"{TICKETS_URL}/missing", json={"status": "CANCELLED"}),
        await api.client.post(f"{TICKETS_URL}/missing/notes", json={"body": "x"}),
    ):
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "TICKET_NOT_FOUND"


async def test_list_tickets_filters_by_status(api: Api, seed_grid: SeedGrid) -> None:
    await seed_grid()
    open_id = (await _open(api, zone_id="z-a"))["ticket"]["ticket_id"]
    cancelled_id = (await _open(api, zone_id="z-b"))["ticket"]["ticket_id"]
    await api.client.put(f"{TICKETS_URL}/{cancelled_id}", json={"status": "CANCELLED"})

    everything = (await api.client.get(TICKETS_URL)).json()["data"]
    only_open = (await api.client.get(TICKETS_URL, params={"status": "OPEN"})).json()["data"]
    bad_limit = await api.client.get(TICKETS_URL, params={"limit": 0})

    assert {t["ticket_id"] for t in everything} == {open_id, cancelled_id}
    assert [t["ticket_id"] for t in only_open] == [open_id]
    assert bad_limit.status_code == 422
