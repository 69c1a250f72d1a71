# src/gridrecon_api/infrastructure/caching/redis_client.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Async Redis client factory.

Redis backs the distributed zone locks used when several API or scheduler
processes manage audit tickets concurrently.
"""

from __future__ import annotations

from contextlib import suppress
from typing import TYPE_CHECKING, Any, TypeAlias, cast

import redis.asyncio as aioredis

if TYPE_CHECKING:
    from redis.asyncio.client import Redis as _RedisGeneric

    AioredisRedis: TypeAlias = _RedisGeneric[str]
else:
    from redis.asyncio.client import Redis as AioredisRedis  # type: ignore[assignment]

from gridrecon_api.config.settings import Settings, get_settings

__all__ = [
    "AioredisRedis",
    "close_redis",
    "get_redis_client",
    "init_redis",
    "set_redis_client",
]

_client: AioredisRedis | None = None
_DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def _create_aioredis_client(url: str, *, socket_timeout: float) -> AioredisRedis:
    """Build the concrete asyncio Redis client from URL."""
    _from_url: Any = aioredis.from_url
    client = _from_url(
        url=url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=15,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
    return cast(AioredisRedis, client)


def init_redis(settings: Settings) -> None:
    """Initialize the global async Redis client (idempotent)."""
    global _client
    if _client is not None:
        return
    _client = _create_aioredis_client(
        str(settings.redis_url or _DEFAULT_REDIS_URL),
        socket_timeout=settings.redis_socket_timeout_s,
    )


def set_redis_client(client: AioredisRedis | None) -> None:
    """Install a client explicitly (tests use a fakeredis instance)."""
    global _client
    _client = client


async def close_redis() -> None:
    """Close the global Redis client at shutdown."""
    global _client
    if _client is not None:
        with suppress(RuntimeError):
            await _client.aclose()
        _client = None


def get_redis_client() -> AioredisRedis:
    """Return the initialized Redis client (lazy-inits when lifespan was skipped)."""
    if _client is None:
        init_redis(get_settings())
    if _client is None:
        raise RuntimeError("Redis client not initialized (init_redis failed)")
    return _client
