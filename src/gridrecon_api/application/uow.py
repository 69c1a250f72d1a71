# src/gridrecon_api/application/uow.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Unit of Work boundary for application services.

Zones are reconciled concurrently and ticket mutations run under per-zone
locks, so services never share a transaction. They receive a
``UnitOfWorkFactory`` and open one short-lived unit per read-check-write
sequence:

    async with uow_factory() as tx:
        repo = tx.get_repository(AuditTicketsRepository)
        ...
        await tx.commit()

Leaving the block without ``commit()`` rolls back.

Layer:
    application
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from types import TracebackType
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class UnitOfWork(Protocol, AbstractAsyncContextManager["UnitOfWork"]):
    """One transaction spanning the grid, report and ticket repositories."""

    async def __aenter__(self) -> UnitOfWork:
        raise NotImplementedError

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None:
        raise NotImplementedError

    async def commit(self) -> None:
        raise NotImplementedError

    async def rollback(self) -> None:
        raise NotImplementedError

    def get_repository(self, repo_type: type[Any]) -> Any:
        """Return the repository registered for ``repo_type`` (a port protocol)."""
        raise NotImplementedError


UnitOfWorkFactory = Callable[[], UnitOfWork]

__all__ = ["UnitOfWork", "UnitOfWorkFactory"]
