# migrations/env.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Alembic Environment (migrations/env.py)

Purpose:
    Configure Alembic for GridRecon's SQLAlchemy models across offline and
    online (async) migration runs.

Design:
    - Loads env vars from .env + .env.<ENVIRONMENT> (without overriding exported vars).
    - Loads the database URL from environment variables or alembic.ini.
    - Refuses to run if ENVIRONMENT is missing (prevents "wrong DB" mistakes).
    - Uses the project Declarative Base for autogenerate (`target_metadata`).
    - Supports async engines for online migrations.
    - Emits masked connection information to the log (no credentials).

Environment variables:
    ENVIRONMENT     Required. e.g. "test", "development", "production".
    DATABASE_URL    Database URL (falls back to alembic.ini sqlalchemy.url).
    DB_SCHEMA       Optional schema for all GridRecon tables.
    ECHO_SQL        If "1", enable SQL echo in online runs.
    ALEMBIC_SHOW_URL  If "1", log masked URL during runs.

Usage:
    ENVIRONMENT=development alembic upgrade head
    ENVIRONMENT=development alembic upgrade head --sql
"""

from __future__ import annotations

import asyncio
import logging
import logging.config
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse, urlunparse

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from gridrecon_api.infrastructure.database.models import metadata as BaseMetadata

config = context.config

if config.config_file_name is not None:
    logging.config.fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

_VERSION_TABLE = "alembic_version"


def _load_env_files() -> None:
    """Load .env and .env.<ENVIRONMENT> from the repo root (no override)."""
    root = Path(__file__).resolve().parents[1]

    base = root / ".env"
    if base.exists():
        load_dotenv(base, override=False)

    env = (os.getenv("ENVIRONMENT") or "").strip().lower()
    if env:
        env_file = root / f".env.{env}"
        if env_file.exists():
            load_dotenv(env_file, override=False)


_load_env_files()


def _mask_url(url: str) -> str:
    """Return a masked representation of a database URL for safe logging."""
    parts = urlparse(url)
    user = parts.username or ""
    host = parts.hostname or ""
    port = f":{parts.port}" if parts.port else ""
    auth = f"{user}:****@" if user else ""
    return urlunparse((parts.scheme, f"{auth}{host}{port}", parts.path or "", "", "", ""))


def _get_db_url() -> str:
    """Resolve the database URL from ``DATABASE_URL`` or alembic.ini.

    Raises:
        RuntimeError: If no database URL can be resolved.
    """
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    ini_url = config.get_main_option("sqlalchemy.url")
    if ini_url:
        return ini_url
    raise RuntimeError("Database URL not configured (DATABASE_URL/sqlalchemy.url).")


def _require_environment() -> str:
    env = (os.getenv("ENVIRONMENT") or "").strip().lower()
    if not env:
        raise RuntimeError(
            "ENVIRONMENT is required for migrations (e.g., ENVIRONMENT=development). "
            "Refusing to run without an explicit environment."
        )
    return env


def _maybe_log_url(url: str) -> None:
    x = dict(getattr(config, "x", {}) or {})
    if x.get("show_url") == "1" or os.getenv("ALEMBIC_SHOW_URL") == "1":
        logger.info("Using DATABASE_URL (masked): %s", _mask_url(url))


target_metadata = BaseMetadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (SQL script output)."""
    _require_environment()
    url = _get_db_url()
    _maybe_log_url(url)

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        include_schemas=True,
        version_table=_VERSION_TABLE,
        version_table_schema=target_metadata.schema,
    )

    with context.begin_transaction():
        context.run_migrations()


def _online_engine_kwargs() -> dict[str, Any]:
    return {"echo": os.getenv("ECHO_SQL") == "1", "poolclass": pool.NullPool}


def _configure_and_run(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        include_schemas=True,
        version_table=_VERSION_TABLE,
        version_table_schema=target_metadata.schema,
    )

    with context.begin_transaction():
        context.run_migrations()


async def _run_migrations_async() -> None:
    _require_environment()
    url = _get_db_url()
    _maybe_log_url(url)

    connectable: AsyncEngine = create_async_engine(url, **_online_engine_kwargs())
    async with connectable.connect() as connection:
        await connection.run_sync(_configure_and_run)
    await connectable.dispose()


def run_migrations_online() -> None:
    """Entry point used by Alembic for online migrations."""
    asyncio.run(_run_migrations_async())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
