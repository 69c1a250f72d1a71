# tests/unit/infrastructure/test_retry.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
from __future__ import annotations

import pytest

from gridrecon_api.infrastructure.resilience.retry import RetryPolicy, retry_async

FAST = RetryPolicy(total=2, base=0.001, cap=0.002, jitter=False)


def test_backoff_is_exponential_and_capped() -> None:
    policy = RetryPolicy(total=5, base=0.1, cap=0.5, jitter=False)
    assert [policy.backoff_for(a) for a in range(4)] == [0.1, 0.2, 0.4, 0.5]


def test_jitter_stays_within_bounds() -> None:
    policy = RetryPolicy(total=5, base=0.1, cap=0.5, jitter=True)
    for attempt in range(6):
        assert 0.0 <= policy.backoff_for(attempt) <= 0.5


async def test_returns_first_success() -> None:
    calls = 0

    async def fn() -> str:
        nonlocal calls
        calls += 1
        return "ok"

    assert await retry_async(fn, policy=FAST, retry_on=lambda r: r != "ok") == "ok"
    assert calls == 1


async def test_retries_transient_exceptions_then_succeeds() -> None:
    attempts: list[int] = []

    async def flaky() -> int:
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return 204

    result = await retry_async(
        flaky, policy=FAST, retry_on=lambda r: isinstance(r, ConnectionError)
    )

    assert result == 204
    assert len(attempts) == 3


async def test_non_retryable_exception_raises_immediately() -> None:
    calls = 0

    async def bad() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("permanent")

    with pytest.raises(ValueError, match="permanent"):
        await retry_async(bad, policy=FAST, retry_on=lambda r: isinstance(r, ConnectionError))
    assert calls == 1


async def test_exhausted_budget_reraises_last_exception() -> None:
    calls = 0

    async def down() -> None:
        nonlocal calls
        calls += 1
        raise ConnectionError(f"attempt {calls}")

    with pytest.raises(ConnectionError, match="attempt 3"):
        await retry_async(down, policy=FAST, retry_on=lambda r: True)
    assert calls == 3


async def test_exhausted_budget_returns_last_rejected_value() -> None:
    statuses = iter([503, 502, 500])

    async def status() -> int:
        return next(statuses)

    result = await retry_async(status, policy=FAST, retry_on=lambda r: r == 500 or r >= 502)

    assert result == 500
