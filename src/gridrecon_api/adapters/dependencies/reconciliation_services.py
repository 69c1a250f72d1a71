# src/gridrecon_api/adapters/dependencies/reconciliation_services.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reconciliation service wiring.

Purpose:
    Build the object graph behind the reconciliation and audit ticket
    endpoints from :class:`Settings`: repositories, zone lock manager,
    notification gateway, ticket manager and use cases.

Layer:
    adapters/dependencies

Notes:
    * The graph is built once per process. The zone lock manager and the
      ticket manager's pending notifications must be shared by every request.
    * The FastAPI lifespan stores the graph on ``app.state.services``; test
      transports that skip lifespan fall back to a lazily built graph.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gridrecon_api.adapters.gateways.broadcast_notification_gateway import (
    BroadcastNotificationGateway,
)
from gridrecon_api.adapters.repositories.grid_repository import (
    SqlAlchemyReadingStore,
    SqlAlchemyTopologyProvider,
)
from gridrecon_api.adapters.uow.sqlalchemy_uow import sqlalchemy_uow_factory
from gridrecon_api.application.services.audit_ticket_manager import (
    AuditTicketManager,
    TicketPolicy,
)
from gridrecon_api.application.services.delta_calculator import DeltaCalculator
from gridrecon_api.application.uow import UnitOfWorkFactory
from gridrecon_api.application.use_cases.reconciliation.get_reconciliation_report import (
    GetReconciliationReportUseCase,
)
from gridrecon_api.application.use_cases.reconciliation.get_zones_reconciliation import (
    GetZonesReconciliationUseCase,
)
from gridrecon_api.application.use_cases.reconciliation.run_reconciliation import (
    RunPolicy,
    RunReconciliationUseCase,
)
from gridrecon_api.config.settings import LockBackend, Settings, get_settings
from gridrecon_api.domain.interfaces.gateways.notification_gateway import NotificationGateway
from gridrecon_api.domain.interfaces.gateways.reading_store import ReadingStore
from gridrecon_api.domain.interfaces.gateways.topology_provider import TopologyProvider
from gridrecon_api.domain.interfaces.gateways.zone_lock_manager import ZoneLockManager
from gridrecon_api.domain.services.anomaly_classifier import (
    AnomalyClassifier,
    AnomalyThresholds,
)
from gridrecon_api.domain.services.billing_calendar import BillingCalendar
from gridrecon_api.domain.services.energy_balance import EnergyBalanceConfig, EnergyBalanceEngine
from gridrecon_api.infrastructure.caching.redis_client import get_redis_client, init_redis
from gridrecon_api.infrastructure.database.session import (
    get_sessionmaker,
    init_engine_and_sessionmaker,
)
from gridrecon_api.infrastructure.locks.memory_lock import InMemoryZoneLockManager
from gridrecon_api.infrastructure.locks.redis_lock import RedisZoneLockManager
from gridrecon_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


@dataclass
class ReconciliationServices:
    """Process-wide reconciliation object graph."""

    settings: Settings
    uow_factory: UnitOfWorkFactory
    topology: TopologyProvider
    reading_store: ReadingStore
    lock_manager: ZoneLockManager
    notifier: NotificationGateway | None
    ticket_manager: AuditTicketManager
    run_reconciliation: RunReconciliationUseCase
    get_report: GetReconciliationReportUseCase
    get_zones: GetZonesReconciliationUseCase


def build_lock_manager(settings: Settings) -> ZoneLockManager:
    """Return the zone lock manager selected by ``ZONE_LOCK_BACKEND``."""
    if settings.zone_lock_backend is LockBackend.REDIS:
        init_redis(settings)
        return RedisZoneLockManager(get_redis_client(), ttl_s=settings.zone_lock_ttl_s)
    return InMemoryZoneLockManager()


def build_notifier(
    settings: Settings, http_client: httpx.AsyncClient | None
) -> NotificationGateway | None:
    """Return the broadcast gateway, or ``None`` when no broadcast URL is configured."""
    if settings.broadcast_base_url is None or http_client is None:
        return None
    return BroadcastNotificationGateway(
        http_client,
        base_url=str(settings.broadcast_base_url),
        max_retries=settings.broadcast_max_retries,
    )


def build_services(
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    http_client: httpx.AsyncClient | None = None,
    lock_manager: ZoneLockManager | None = None,
    notifier: NotificationGateway | None = None,
) -> ReconciliationServices:
    """Assemble the reconciliation object graph.

    Args:
        settings: Resolved application settings.
        session_factory: Session factory; defaults to the global one.
        http_client: Shared client for the broadcast gateway.
        lock_manager: Override for the zone lock manager.
        notifier: Override for the notification gateway.
    """
    if session_factory is None:
        init_engine_and_sessionmaker(settings)
        session_factory = get_sessionmaker()

    uow_factory = sqlalchemy_uow_factory(session_factory)
    topology = SqlAlchemyTopologyProvider(session_factory)
    reading_store = SqlAlchemyReadingStore(session_factory)
    locks = lock_manager or build_lock_manager(settings)
    gateway = notifier or build_notifier(settings, http_client)

    ticket_manager = AuditTicketManager(
        uow_factory=uow_factory,
        lock_manager=locks,
        policy=TicketPolicy(
            tariff_rate=settings.tariff_rate,
            currency=settings.tariff_currency,
            lock_timeout_s=settings.zone_lock_timeout_s,
        ),
        topology=topology,
        notifier=gateway,
    )
    classifier = AnomalyClassifier(
        AnomalyThresholds(
            watch=settings.recon_watch_ratio,
            elevated=settings.recon_elevated_ratio,
            critical=settings.recon_critical_ratio,
            sustained_watch_runs=settings.recon_sustained_watch_runs,
        )
    )
    calculator = DeltaCalculator(
        reading_store,
        EnergyBalanceEngine(
            EnergyBalanceConfig(
                max_reading_gap=timedelta(minutes=settings.recon_max_reading_gap_minutes)
            )
        ),
    )
    run_use_case = RunReconciliationUseCase(
        topology=topology,
        delta_calculator=calculator,
        classifier=classifier,
        ticket_manager=ticket_manager,
        uow_factory=uow_factory,
        calendar=BillingCalendar.from_hours(
            settings.billing_interval_hours, anchor_hour=settings.billing_anchor_hour
        ),
        policy=RunPolicy(
            max_workers=settings.recon_max_workers,
            deadline_s=settings.recon_deadline_s or None,
            ticket_link_retries=settings.ticket_link_retries,
        ),
    )

    logger.info(
        "services.built",
        extra={
            "lock_backend": type(locks).__name__,
            "notifications": gateway is not None,
            "max_workers": settings.recon_max_workers,
        },
    )
    return ReconciliationServices(
        settings=settings,
        uow_factory=uow_factory,
        topology=topology,
        reading_store=reading_store,
        lock_manager=locks,
        notifier=gateway,
        ticket_manager=ticket_manager,
        run_reconciliation=run_use_case,
        get_report=GetReconciliationReportUseCase(uow_factory=uow_factory),
        get_zones=GetZonesReconciliationUseCase(uow_factory=uow_factory),
    )


_FALLBACK: ReconciliationServices | None = None


def get_services(request: Request) -> ReconciliationServices:
    """FastAPI dependency: return the process-wide service graph."""
    global _FALLBACK
    services = getattr(request.app.state, "services", None)
    if services is not None:
        return services  # type: ignore[no-any-return]
    # Lazy-init to support test transports that skip lifespan.
    if _FALLBACK is None:
        _FALLBACK = build_services(get_settings())
    return _FALLBACK


def reset_services() -> None:
    """Drop the lazily built graph (tests)."""
    global _FALLBACK
    _FALLBACK = None
