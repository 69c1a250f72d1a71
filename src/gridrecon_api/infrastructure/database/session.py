# src/gridrecon_api/infrastructure/database/session.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Process-wide async engine and session factory.

Lifecycle:
    * ``init_engine_and_sessionmaker(settings)`` at startup (API lifespan or
      CLI bootstrap). Idempotent.
    * ``get_sessionmaker()`` hands the factory to units of work.
    * ``get_db_session()`` yields a single session for read paths that run
      outside a unit of work (topology and reading lookups).
    * ``dispose_engine()`` at shutdown.

Schema placement:
    ORM metadata takes its schema from the ``DB_SCHEMA`` environment variable
    at import time. Settings may resolve a different value (for example from
    a ``.env`` file); the engine then translates the import-time schema to the
    configured one.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from typing import Any

from sqlalchemy.exc import IllegalStateChangeError, InvalidRequestError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from gridrecon_api.config.settings import Settings, get_settings
from gridrecon_api.infrastructure.database.models.base import DEFAULT_DB_SCHEMA

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def engine_options(settings: Settings) -> dict[str, Any]:
    """Return ``create_async_engine`` keyword arguments for ``settings``."""
    options: dict[str, Any] = {"pool_pre_ping": True, "echo": False}
    schema = settings.db_schema or None
    if schema != DEFAULT_DB_SCHEMA:
        options["execution_options"] = {"schema_translate_map": {DEFAULT_DB_SCHEMA: schema}}
    return options


def init_engine_and_sessionmaker(settings: Settings) -> None:
    """Create the global engine and sessionmaker once.

    Raises:
        ValueError: If ``database_url`` is empty.
    """
    global _engine, _sessionmaker

    if not settings.database_url:
        raise ValueError("database_url must be configured")
    if _engine is not None:
        return

    _engine = create_async_engine(settings.database_url, **engine_options(settings))
    _sessionmaker = async_sessionmaker(bind=_engine, expire_on_commit=False, class_=AsyncSession)


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the global session factory.

    Raises:
        RuntimeError: If the engine has not been initialized.
    """
    if _sessionmaker is None:
        raise RuntimeError("DB sessionmaker not initialized (call init_engine_and_sessionmaker)")
    return _sessionmaker


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a short-lived session, initializing the engine lazily.

    Any transaction left open is rolled back before the session closes.
    """
    if _sessionmaker is None:
        init_engine_and_sessionmaker(get_settings())

    session = get_sessionmaker()()
    try:
        yield session
    finally:
        with suppress(InvalidRequestError):
            tx = session.get_transaction()
            if tx is not None and tx.is_active:
                await session.rollback()
        with suppress(InvalidRequestError, IllegalStateChangeError):
            await session.close()
