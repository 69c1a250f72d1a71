# src/gridrecon_api/dependencies/core/bootstrap.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Core bootstrap for infrastructure (DB, Redis, HTTP, service graph).

This module owns the lifecycle of shared infrastructure used by the FastAPI app
and the CLI. Configuration is read from Settings; heavy lifting is delegated to
the infrastructure modules and to the service wiring.

The single public surface is :func:`bootstrap`, an async context manager that
yields a state object with the resolved Settings, the shared HTTP client and
the reconciliation service graph.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx

from gridrecon_api.adapters.dependencies.reconciliation_services import (
    ReconciliationServices,
    build_services,
)
from gridrecon_api.config.settings import LockBackend, Settings, get_settings
from gridrecon_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


@dataclass
class BootstrapState:
    """State yielded by the bootstrap context manager."""

    settings: Settings
    http_client: httpx.AsyncClient
    services: ReconciliationServices


@asynccontextmanager
async def bootstrap(app: Any | None = None) -> AsyncGenerator[BootstrapState, None]:
    """Initialize and teardown shared infrastructure.

    Responsibilities:
        * Load application settings.
        * Initialize DB engine/sessionmaker.
        * Initialize the Redis client when zone locks live in Redis.
        * Create a shared HTTPX AsyncClient for the broadcast gateway.
        * Build the service graph and publish it on ``app.state.services``.
        * Ensure all of the above are shut down on exit, even on error.

    Args:
        app: FastAPI application instance, or ``None`` for the CLI.

    Yields:
        BootstrapState: Settings, shared HTTP client and service graph.
    """
    settings: Settings = get_settings()
    logger.info("bootstrap.start")

    # Import infrastructure modules here so tests can monkeypatch their functions.
    import gridrecon_api.infrastructure.caching.redis_client as redis_client
    import gridrecon_api.infrastructure.database.session as db_session

    db_session.init_engine_and_sessionmaker(settings)
    if settings.zone_lock_backend is LockBackend.REDIS:
        redis_client.init_redis(settings)

    http_client = httpx.AsyncClient(timeout=settings.broadcast_timeout_s)
    services = build_services(
        settings,
        session_factory=db_session.get_sessionmaker(),
        http_client=http_client,
    )
    if app is not None:
        app.state.services = services

    state = BootstrapState(settings=settings, http_client=http_client, services=services)

    try:
        yield state
    finally:
        # Let fire-and-forget notifications finish before the client closes.
        try:
            await services.ticket_manager.drain_notifications()
        except Exception:
            logger.exception("bootstrap.notifications_drain_failed")

        try:
            await http_client.aclose()
        except Exception:
            logger.exception("bootstrap.http_client_close_failed")

        try:
            await redis_client.close_redis()
        except Exception:
            logger.exception("bootstrap.redis_close_failed")

        try:
            await db_session.dispose_engine()
        except Exception:
            logger.exception("bootstrap.db_dispose_failed")

        if app is not None:
            app.state.services = None
        logger.info("bootstrap.stop")


__all__ = ["BootstrapState", "bootstrap"]
