# src/gridrecon_api/infrastructure/locks/memory_lock.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""In-process zone locks.

Suitable when a single process manages tickets (development, tests and
single-replica deployments). Locks are created lazily, one per zone.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from gridrecon_api.domain.exceptions.audit_ticket import ConcurrentTicketConflictError


class InMemoryZoneLockManager:
    """Per-zone ``asyncio.Lock`` registry with bounded acquisition."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, zone_id: str) -> asyncio.Lock:
        lock = self._locks.get(zone_id)
        if lock is None:
            lock = self._locks[zone_id] = asyncio.Lock()
        return lock

    def is_locked(self, zone_id: str) -> bool:
        """Return True while some task holds the zone lock."""
        lock = self._locks.get(zone_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, zone_id: str, *, timeout_s: float) -> AsyncIterator[None]:
        """Hold the zone lock for the duration of the block.

        Raises:
            ConcurrentTicketConflictError: If the lock is not acquired in time.
        """
        lock = self._lock_for(zone_id)
        started = time.monotonic()
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout_s)
        except TimeoutError as exc:
            raise ConcurrentTicketConflictError(
                zone_id, waited_s=time.monotonic() - started
            ) from exc
        try:
            yield
        finally:
            lock.release()
