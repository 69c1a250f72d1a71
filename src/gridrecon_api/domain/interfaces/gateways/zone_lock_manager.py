# src/gridrecon_api/domain/interfaces/gateways/zone_lock_manager.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Per-zone exclusive lock interface.

Purpose:
    Serialize audit-ticket mutations per zone so the read-check-write that
    enforces "at most one active ticket per zone" cannot interleave.

Layer:
    domain/interfaces/gateways
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol


class ZoneLockManager(Protocol):
    """Protocol for keyed exclusive locks."""

    def hold(self, zone_id: str, *, timeout_s: float) -> AbstractAsyncContextManager[None]:
        """Return a context manager holding the lock for ``zone_id``.

        Raises:
            ConcurrentTicketConflictError: On entry, if the lock could not be
                acquired within ``timeout_s`` seconds.
        """
        ...
