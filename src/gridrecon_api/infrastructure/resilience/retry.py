# src/gridrecon_api/infrastructure/resilience/retry.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Retry utilities (async) with jittered exponential backoff."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry attempts."""

    total: int  # number of retries (not counting the first attempt)
    base: float  # base backoff seconds
    cap: float  # max backoff seconds
    jitter: bool = True  # add full jitter if True

    def backoff_for(self, attempt: int) -> float:
        """Return the sleep before retry number ``attempt + 1``."""
        backoff = min(self.cap, self.base * (2**attempt))
        if self.jitter:
            backoff = random.uniform(0, backoff)  # noqa: S311
        return backoff


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    retry_on: Callable[[Exception | T], bool],
) -> T:
    """Retry an async function with backoff until success or budget exhausted.

    Args:
        fn: Zero-arg async function to execute.
        policy: RetryPolicy defining count/backoff.
        retry_on: Predicate that returns True when we should retry. It receives
            either the raised exception or the returned value.

    Returns:
        The return value of ``fn``; once retries are exhausted, the last value
        even if ``retry_on`` still rejects it.

    Raises:
        The last exception if retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            result = await fn()
        except Exception as exc:  # noqa: BLE001
            if attempt >= policy.total or not retry_on(exc):
                raise
        else:
            if attempt >= policy.total or not retry_on(result):
                return result
        await asyncio.sleep(policy.backoff_for(attempt))
        attempt += 1
