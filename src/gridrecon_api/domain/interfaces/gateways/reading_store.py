# src/gridrecon_api/domain/interfaces/gateways/reading_store.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reading store interface.

Layer:
    domain/interfaces/gateways
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from gridrecon_api.domain.entities.reading import Reading


class ReadingStore(Protocol):
    """Read-only, time-ordered energy readings.

    Both methods return readings with ``start <= timestamp <= end`` in
    ascending timestamp order, preceded by the latest reading taken before
    ``start`` when one exists. That reading is the register baseline for
    cumulative feeds. Storage failures surface as
    :class:`ReadingStoreUnavailableError`.
    """

    async def get_substation_readings(
        self, substation_id: str, start: datetime, end: datetime
    ) -> Sequence[Reading]:
        """Return output readings for one substation."""
        ...

    async def get_meter_readings(
        self, meter_id: str, start: datetime, end: datetime
    ) -> Sequence[Reading]:
        """Return consumption readings for one meter."""
        ...
