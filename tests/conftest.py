# tests/conftest.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

# Settings are read lazily but cached; pin a throwaway SQLite database and a
# test environment before any application module is imported.
_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="gridrecon-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR / 'gridrecon.db'}"
os.environ["ENVIRONMENT"] = "test"
_UNSET = ("DB_SCHEMA", "ZONE_LOCK_BACKEND", "REDIS_URL", "BROADCAST_BASE_URL", "ALLOWED_ORIGINS")
for _var in _UNSET:
    os.environ.pop(_var, None)

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from gridrecon_api.adapters.dependencies.reconciliation_services import (  # noqa: E402
    reset_services,
)
from gridrecon_api.config.settings import get_settings  # noqa: E402
from gridrecon_api.infrastructure.database.models import Base  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Drop cached settings and the lazily built service graph around each test."""
    get_settings.cache_clear()
    reset_services()
    yield
    get_settings.cache_clear()
    reset_services()


@pytest.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite engine with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'recon.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=sqlite_engine, expire_on_commit=False, class_=AsyncSession)
