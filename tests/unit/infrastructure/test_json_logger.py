# tests/unit/infrastructure/test_json_logger.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
from __future__ import annotations

import asyncio
import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from decimal import Decimal
from typing import Any

import pytest

from gridrecon_api.domain.enums.reconciliation import RunStatus
from gridrecon_api.infrastructure.logging.logger import (
    _JsonFormatter,
    configure_root_logging,
    get_json_logger,
    get_request_id,
    get_run_id,
    set_request_context,
)


@pytest.fixture
def pristine_root() -> Iterator[logging.Logger]:
    """Give the test an unconfigured root logger and restore it afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    root.handlers.clear()
    try:
        yield root
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def _render(msg: str, *, exc_info: Any = None, **extra: Any) -> dict[str, Any]:
    """Build a record by hand, attach extras and return the parsed JSON line."""
    logger = logging.getLogger("test.gridrecon")
    record = logger.makeRecord(
        name=logger.name,
        level=logging.INFO,
        fn="test_json_logger",
        lno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(_JsonFormatter().format(record))


def test_configure_root_logging_is_idempotent(
    pristine_root: logging.Logger, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "warning")

    configure_root_logging()
    configure_root_logging()

    assert pristine_root.level == logging.WARNING
    assert len(pristine_root.handlers) == 1
    assert isinstance(pristine_root.handlers[0].formatter, _JsonFormatter)


def test_explicit_level_wins_over_env(
    pristine_root: logging.Logger, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "error")
    configure_root_logging("DEBUG")
    assert pristine_root.level == logging.DEBUG


def test_basic_fields_and_flat_extras() -> None:
    payload = _render(
        "reconciliation.run.complete",
        zones_total=3,
        total_delta_kwh=Decimal("12.5"),
        status=RunStatus.COMPLETED,
    )
    assert payload["message"] == "reconciliation.run.complete"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.gridrecon"
    assert "ts" in payload
    assert payload["zones_total"] == 3
    assert payload["total_delta_kwh"] == "12.5"
    assert "COMPLETED" in payload["status"]


def test_nested_extra_dict_is_merged() -> None:
    payload = _render("http.access", extra={"path": "/healthz", "status": 200})
    assert payload["path"] == "/healthz"
    assert payload["status"] == 200
    assert "extra" not in payload


def test_request_id_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REQUEST_ID", "from-env")

    def in_fresh_context() -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
        env_only = _render("a")
        set_request_context(request_id="from-context")
        ctx = _render("b")
        explicit = _render("c", request_id="from-record")
        return env_only, ctx, explicit

    env_only, ctx, explicit = contextvars.copy_context().run(in_fresh_context)

    assert env_only["request_id"] == "from-env"
    assert ctx["request_id"] == "from-context"
    assert explicit["request_id"] == "from-record"


def test_run_id_from_context_and_record() -> None:
    def scenario() -> tuple[dict[str, Any], dict[str, Any]]:
        set_request_context(run_id="run-42")
        return _render("x"), _render("y", run_id="run-override")

    from_ctx, from_record = contextvars.copy_context().run(scenario)

    assert from_ctx["run_id"] == "run-42"
    assert from_record["run_id"] == "run-override"


def test_set_request_context_is_additive() -> None:
    def scenario() -> tuple[str | None, str | None]:
        set_request_context(request_id="req-1")
        set_request_context(run_id="run-1")
        return get_request_id(), get_run_id()

    assert contextvars.copy_context().run(scenario) == ("req-1", "run-1")


async def test_context_is_task_local() -> None:
    async def worker(rid: str) -> str | None:
        set_request_context(request_id=rid)
        await asyncio.sleep(0)
        return get_request_id()

    assert await asyncio.gather(worker("one"), worker("two")) == ["one", "two"]


def test_exception_info_is_rendered() -> None:
    try:
        raise ValueError("meter feed exploded")
    except ValueError:
        payload = _render("boom", exc_info=sys.exc_info())

    assert payload["exc_type"] == "ValueError"
    assert payload["exc_message"] == "meter feed exploded"


def test_get_json_logger_propagates() -> None:
    logger = get_json_logger("gridrecon_api.test")
    assert logger.name == "gridrecon_api.test"
    assert logger.propagate is True
