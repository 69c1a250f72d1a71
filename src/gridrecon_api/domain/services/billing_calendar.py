# src/gridrecon_api/domain/services/billing_calendar.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Billing interval arithmetic.

Layer:
    domain/services
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

_EPOCH = datetime(2000, 1, 1, tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class BillingCalendar:
    """Fixed-length billing intervals aligned on an anchor instant.

    Attributes:
        interval: Length of one billing interval.
        anchor: Any instant on which an interval starts.
    """

    interval: timedelta = timedelta(hours=24)
    anchor: datetime = field(default=_EPOCH)

    def __post_init__(self) -> None:
        """Enforce invariants."""
        if self.interval <= timedelta(0):
            raise ValueError("Billing interval must be positive.")
        if self.anchor.tzinfo is None:
            raise ValueError("Billing anchor must be timezone-aware.")

    @classmethod
    def from_hours(cls, hours: int, *, anchor_hour: int = 0) -> BillingCalendar:
        """Build a calendar of ``hours``-long intervals starting at ``anchor_hour`` UTC."""
        return cls(interval=timedelta(hours=hours), anchor=_EPOCH.replace(hour=anchor_hour))

    def interval_start(self, at: datetime) -> datetime:
        """Return the start of the interval containing ``at``."""
        periods = (at - self.anchor) // self.interval
        return self.anchor + periods * self.interval

    def last_completed_interval(self, now: datetime) -> tuple[datetime, datetime]:
        """Return ``[start, end)`` of the most recent fully elapsed interval."""
        end = self.interval_start(now)
        return end - self.interval, end


__all__ = ["BillingCalendar"]
