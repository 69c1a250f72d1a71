# tests/integration/routers/conftest.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""HTTP fixtures: app over ASGITransport with a seeded SQLite grid."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest
from recon_http import Api, SeedGrid, seed_grid_into
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gridrecon_api.adapters.dependencies.reconciliation_services import build_services
from gridrecon_api.config.settings import get_settings
from gridrecon_api.infrastructure.locks.memory_lock import InMemoryZoneLockManager
from gridrecon_api.main import create_app


@pytest.fixture
async def api(
    session_factory: async_sessionmaker[AsyncSession], monkeypatch: pytest.MonkeyPatch
) -> AsyncIterator[Api]:
    # One zone at a time keeps SQLite writers from contending.
    monkeypatch.setenv("RECON_MAX_WORKERS", "1")
    monkeypatch.setenv("TARIFF_RATE", "0.20")
    monkeypatch.setenv("TARIFF_CURRENCY", "USD")
    get_settings.cache_clear()

    app = create_app()
    services = build_services(
        get_settings(), session_factory=session_factory, lock_manager=InMemoryZoneLockManager()
    )
    app.state.services = services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield Api(client=client, services=services, session_factory=session_factory)
    await services.ticket_manager.drain_notifications()


@pytest.fixture
def seed_grid(session_factory: async_sessionmaker[AsyncSession]) -> SeedGrid:
    async def _seed(*, with_readings: bool = True) -> None:
        await seed_grid_into(session_factory, with_readings=with_readings)

    return _seed
