# src/gridrecon_api/infrastructure/database/models/base.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Declarative Base and persistence helpers for GridRecon.

This module defines:
    - A project-wide SQLAlchemy Declarative Base with deterministic naming
      conventions (for stable Alembic diffs).
    - Portable column types: every model runs on PostgreSQL (asyncpg) and on
      SQLite (aiosqlite) for tests.
    - An optimistic concurrency mixin used by mutable aggregates.

Design Goals:
    * UTC everywhere: timestamps are stored timezone-aware and always read
      back as aware UTC datetimes, including on SQLite.
    * Deterministic schema: Alembic-friendly naming conventions prevent churn.
    * Persistence-only; no domain behavior.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime

from sqlalchemy import MetaData
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import DateTime, Integer, Numeric, TypeDecorator

__all__ = [
    "DEFAULT_DB_SCHEMA",
    "KWH",
    "MONEY",
    "RATIO",
    "Base",
    "OptimisticLockingMixin",
    "UTCDateTime",
    "metadata",
    "now_utc",
    "qualified",
]

#: Database schema for all tables; ``None`` keeps the connection default.
DEFAULT_DB_SCHEMA: str | None = os.getenv("DB_SCHEMA") or None

#: Deterministic naming conventions for Alembic-friendly diffs.
#: Ref: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTIONS: dict[str, str] = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTIONS, schema=DEFAULT_DB_SCHEMA)

#: Energy quantities (kWh).
KWH = Numeric(20, 6)
#: Loss ratios (delta / output); unbounded sign.
RATIO = Numeric(20, 10)
#: Monetary amounts and tariff rates.
MONEY = Numeric(20, 2)


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetime stored as UTC.

    SQLite drops offsets; values read back are re-tagged as UTC so domain
    invariants (aware timestamps) hold on every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes cannot be persisted.")
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Declarative Base for all ORM models."""

    metadata = metadata


class OptimisticLockingMixin:
    """Mixin providing an integer ``version`` column for optimistic locking."""

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default="1",
    )


def qualified(target: str) -> str:
    """Return a ``table.column`` foreign key target qualified with the default schema."""
    return f"{DEFAULT_DB_SCHEMA}.{target}" if DEFAULT_DB_SCHEMA else target


def now_utc() -> datetime:
    """Return the current UTC time with timezone info."""
    return datetime.now(UTC)
