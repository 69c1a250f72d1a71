# src/gridrecon_api/domain/enums/reconciliation.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Reconciliation-specific enums.

Purpose:
    Define severity tiers, per-zone outcome statuses, run statuses and the
    ticket action recorded against each zone of a run.

Layer:
    domain/enums

Notes:
    - Pure domain types:
        * No logging.
        * No HTTP or transport concerns.
        * No persistence or gateways.
"""

from __future__ import annotations

from enum import Enum


class SeverityTier(str, Enum):
    """Loss severity derived from a zone's delta ratio."""

    NORMAL = "normal"
    WATCH = "watch"
    ELEVATED = "elevated"
    CRITICAL = "critical"
    INVERTED = "inverted"
    UNCLASSIFIABLE = "unclassifiable"


class ZoneRunStatus(str, Enum):
    """Outcome of one zone inside a reconciliation run."""

    OK = "ok"
    INCOMPLETE = "incomplete"
    DEGRADED = "degraded"
    NOT_PROCESSED = "not_processed"


class RunStatus(str, Enum):
    """Lifecycle status of a reconciliation report."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TicketAction(str, Enum):
    """What the run did about the zone's audit ticket."""

    NONE = "none"
    CREATED = "created"
    LINKED = "linked"
    FAILED = "failed"


__all__ = ["RunStatus", "SeverityTier", "TicketAction", "ZoneRunStatus"]
