# src/gridrecon_api/adapters/uow/sqlalchemy_uow.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""SQLAlchemy-backed Unit of Work implementation.

Purpose:
    Concrete implementation of the application-layer UnitOfWork protocol on
    top of one AsyncSession. Reconciliation and ticket services open one UoW
    per transaction through :func:`sqlalchemy_uow_factory`.

Layer:
    adapters/uow
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import TracebackType
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gridrecon_api.adapters.repositories.audit_tickets_repository import (
    SqlAlchemyAuditTicketsRepository,
)
from gridrecon_api.adapters.repositories.reconciliation_reports_repository import (
    SqlAlchemyReconciliationReportsRepository,
)
from gridrecon_api.application.uow import UnitOfWork, UnitOfWorkFactory
from gridrecon_api.domain.interfaces.repositories.audit_tickets_repository import (
    AuditTicketsRepository as AuditTicketsRepositoryPort,
)
from gridrecon_api.domain.interfaces.repositories.reconciliation_reports_repository import (
    ReconciliationReportsRepository as ReconciliationReportsRepositoryPort,
)

RepoFactory = Callable[[AsyncSession], Any]

_DEFAULT_FACTORIES: dict[type[Any], RepoFactory] = {
    ReconciliationReportsRepositoryPort: SqlAlchemyReconciliationReportsRepository,
    SqlAlchemyReconciliationReportsRepository: SqlAlchemyReconciliationReportsRepository,
    AuditTicketsRepositoryPort: SqlAlchemyAuditTicketsRepository,
    SqlAlchemyAuditTicketsRepository: SqlAlchemyAuditTicketsRepository,
}


class SqlAlchemyUnitOfWork(UnitOfWork):
    """UnitOfWork over a single AsyncSession.

    Usage:

        async with SqlAlchemyUnitOfWork(session_factory=maker) as uow:
            repo = uow.get_repository(AuditTicketsRepository)
            ...
            await uow.commit()

    Leaving the block with an exception rolls back; leaving it without a
    commit discards pending changes when the session closes.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        repo_factories: Mapping[type[Any], RepoFactory] | None = None,
    ) -> None:
        """Initialize the UnitOfWork.

        Args:
            session_factory: Factory for new AsyncSession instances.
            repo_factories: Extra or overriding repository factories keyed by
                port or concrete class.
        """
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._repo_factories: dict[type[Any], RepoFactory] = {
            **_DEFAULT_FACTORIES,
            **(dict(repo_factories) if repo_factories is not None else {}),
        }
        self._repos: dict[type[Any], Any] = {}
        self._finished = False

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        if self._session is not None:
            raise RuntimeError("UnitOfWork is already active; nested usage is not supported.")
        self._session = self._session_factory()
        self._finished = False
        self._repos.clear()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None:
        try:
            if exc_type is not None:
                await self.rollback()
        finally:
            if self._session is not None:
                await self._session.close()
                self._session = None
            self._repos.clear()
        return None

    async def commit(self) -> None:
        """Commit the transaction; a second call is a no-op.

        Raises:
            RuntimeError: If called without an active session.
        """
        if self._session is None:
            raise RuntimeError("Cannot commit: UnitOfWork has no active session.")
        if self._finished:
            return
        await self._session.commit()
        self._finished = True

    async def rollback(self) -> None:
        if self._session is None or self._finished:
            return
        await self._session.rollback()
        self._finished = True

    def get_repository(self, repo_type: type[Any]) -> Any:
        """Return the repository registered for ``repo_type``, bound to this session.

        Raises:
            RuntimeError: If called outside an active scope.
            KeyError: If no factory is registered for ``repo_type``.
        """
        if self._session is None:
            raise RuntimeError(
                "get_repository() called outside of an active UnitOfWork scope. "
                "Use 'async with uow:' before requesting repositories.",
            )
        if repo_type not in self._repos:
            try:
                factory = self._repo_factories[repo_type]
            except KeyError as exc:
                raise KeyError(
                    f"No repository factory registered for type {repo_type!r}."
                ) from exc
            self._repos[repo_type] = factory(self._session)
        return self._repos[repo_type]


def sqlalchemy_uow_factory(
    session_factory: async_sessionmaker[AsyncSession],
    repo_factories: Mapping[type[Any], RepoFactory] | None = None,
) -> UnitOfWorkFactory:
    """Return a factory producing a fresh :class:`SqlAlchemyUnitOfWork` per call."""

    def _factory() -> UnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory=session_factory, repo_factories=repo_factories)

    return _factory


__all__ = ["SqlAlchemyUnitOfWork", "sqlalchemy_uow_factory"]
