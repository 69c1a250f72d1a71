# src/gridrecon_api/adapters/repositories/base_repository.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""
BaseRepository: shared foundation for GridRecon repositories.

Purpose:
    Shared mechanics for all repositories:
      * Deterministic ordering helpers (NULLS LAST + PK tie-breakers).
      * Safe fetch helpers (optional, all).
      * Latency/error instrumentation around each operation.
      * Translation of driver failures into ``ReadingStoreUnavailableError``.

Layer: adapters / repositories

Notes:
    * No business logic, no domain decisions.
    * Repositories never commit; use cases own transactions.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, nulls_last
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from gridrecon_api.domain.exceptions.reconciliation import ReadingStoreUnavailableError
from gridrecon_api.infrastructure.observability.metrics import (
    get_db_errors_total,
    get_db_operation_duration_seconds,
)

TModel = TypeVar("TModel")


class BaseRepository(Generic[TModel]):  # noqa: UP046
    """Base class for all SQLAlchemy repositories."""

    _MODEL_NAME = "unknown"

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: Async SQLAlchemy session bound to the target database.
        """
        self._session: AsyncSession = session

    @staticmethod
    def utc_now() -> datetime:
        """Return current UTC time with timezone info."""
        return datetime.now(UTC)

    # ------------------------------------------------------------------
    # Instrumentation
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _instrumented(self, operation: str) -> AsyncIterator[None]:
        """Record latency and failures of one repository operation.

        Connectivity failures are re-raised as ``ReadingStoreUnavailableError``
        so callers can tell storage outages apart from programming errors.
        """
        start = time.perf_counter()
        outcome = "success"
        try:
            yield
        except Exception as exc:
            outcome = "error"
            with suppress(Exception):
                get_db_errors_total().labels(
                    operation=operation, model=self._MODEL_NAME, reason=type(exc).__name__
                ).inc()
            if isinstance(exc, (OperationalError, DBAPIError, OSError)) and not isinstance(
                exc, IntegrityError
            ):
                raise ReadingStoreUnavailableError(
                    f"Storage unavailable during {operation}: {exc}",
                    details={"operation": operation, "model": self._MODEL_NAME},
                ) from exc
            raise
        finally:
            with suppress(Exception):
                get_db_operation_duration_seconds().labels(
                    operation=operation, model=self._MODEL_NAME, outcome=outcome
                ).observe(time.perf_counter() - start)

    # ------------------------------------------------------------------
    # Deterministic ordering utilities
    # ------------------------------------------------------------------

    @staticmethod
    def order_by_latest(
        stmt: Select[Any],
        timestamp_col: Any,
        pk_col: Any,
    ) -> Select[Any]:
        """Apply deterministic latest-first ordering.

        The resulting query orders by:

            timestamp DESC NULLS LAST, pk ASC
        """
        return stmt.order_by(
            nulls_last(timestamp_col.desc()),
            pk_col.asc(),
        )

    # ------------------------------------------------------------------
    # Fetch helpers
    # ------------------------------------------------------------------

    async def fetch_optional(self, stmt: Select[Any]) -> TModel | None:
        """Execute a statement and return zero or one row."""
        res = await self._session.execute(stmt)
        return res.scalars().first()

    async def fetch_all(self, stmt: Select[Any]) -> list[TModel]:
        """Execute a statement and return all rows as a list."""
        res = await self._session.execute(stmt)
        return list(res.scalars().all())
