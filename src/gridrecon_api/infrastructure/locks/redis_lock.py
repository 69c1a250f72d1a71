# src/gridrecon_api/infrastructure/locks/redis_lock.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Distributed zone locks on Redis.

Acquisition uses ``SET key token NX PX ttl`` polled until the timeout. The
TTL bounds how long a crashed holder can block a zone. Release deletes the
key only while it still carries our token (checked inside a WATCH/MULTI
transaction), so an expired lock re-acquired by someone else is left alone.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.exceptions import RedisError, WatchError

from gridrecon_api.domain.exceptions.audit_ticket import ConcurrentTicketConflictError
from gridrecon_api.domain.exceptions.reconciliation import ReadingStoreUnavailableError
from gridrecon_api.infrastructure.caching.redis_client import AioredisRedis
from gridrecon_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)

_KEY_PREFIX = "gridrecon:zone-lock:"


class RedisZoneLockManager:
    """Zone locks shared by every process connected to the same Redis.

    Args:
        client: Async Redis client (``decode_responses=True``).
        ttl_s: Lock expiry.
        poll_interval_s: Pause between acquisition attempts.
    """

    def __init__(
        self,
        client: AioredisRedis,
        *,
        ttl_s: float = 30.0,
        poll_interval_s: float = 0.05,
    ) -> None:
        self._redis = client
        self._ttl_ms = int(ttl_s * 1000)
        self._poll_interval_s = poll_interval_s

    @staticmethod
    def key_for(zone_id: str) -> str:
        """Return the Redis key guarding ``zone_id``."""
        return f"{_KEY_PREFIX}{zone_id}"

    async def _try_acquire(self, key: str, token: str) -> bool:
        try:
            return bool(await self._redis.set(key, token, nx=True, px=self._ttl_ms))
        except RedisError as exc:
            raise ReadingStoreUnavailableError(f"Lock store unavailable: {exc}") from exc

    async def _release(self, key: str, token: str) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current != token:
                    await pipe.unwatch()
                    logger.warning("zone_lock.lost", extra={"key": key})
                    return
                pipe.multi()
                pipe.delete(key)
                await pipe.execute()
        except WatchError:
            logger.warning("zone_lock.lost", extra={"key": key})
        except RedisError:
            logger.exception("zone_lock.release_failed", extra={"key": key})

    @asynccontextmanager
    async def hold(self, zone_id: str, *, timeout_s: float) -> AsyncIterator[None]:
        """Hold the zone lock for the duration of the block.

        Raises:
            ConcurrentTicketConflictError: If the lock is not acquired in time.
            ReadingStoreUnavailableError: If Redis cannot be reached.
        """
        key = self.key_for(zone_id)
        token = uuid.uuid4().hex
        started = time.monotonic()
        while not await self._try_acquire(key, token):
            waited = time.monotonic() - started
            if waited >= timeout_s:
                raise ConcurrentTicketConflictError(zone_id, waited_s=waited)
            await asyncio.sleep(min(self._poll_interval_s, max(0.0, timeout_s - waited)))
        try:
            yield
        finally:
            await self._release(key, token)
