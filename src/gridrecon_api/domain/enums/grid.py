# src/gridrecon_api/domain/enums/grid.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Grid topology and metering enums.

Layer:
    domain/enums
"""

from __future__ import annotations

from enum import Enum


class EntityKind(str, Enum):
    """Kind of entity a reading is attributed to."""

    METER = "METER"
    SUBSTATION = "SUBSTATION"


class ReadingKind(str, Enum):
    """Representation of an energy reading.

    CUMULATIVE readings are register values that only grow (barring a
    counter reset). INTERVAL readings carry the energy consumed or delivered
    since the previous sample.
    """

    CUMULATIVE = "CUMULATIVE"
    INTERVAL = "INTERVAL"


__all__ = ["EntityKind", "ReadingKind"]
