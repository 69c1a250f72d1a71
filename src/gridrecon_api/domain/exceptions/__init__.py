# src/gridrecon_api/domain/exceptions/__init__.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Domain exception taxonomy."""

from gridrecon_api.domain.exceptions.audit_ticket import (
    ConcurrentTicketConflictError,
    InvalidTicketError,
    InvalidTransitionError,
    TicketNotFoundError,
)
from gridrecon_api.domain.exceptions.base import DomainError
from gridrecon_api.domain.exceptions.reconciliation import (
    DataGapError,
    InvalidWindowError,
    MixedReadingKindsError,
    ReadingStoreUnavailableError,
    ReportNotFoundError,
    TopologyInconsistencyError,
    ZoneConfigurationError,
    ZoneNotFoundError,
)

__all__ = [
    "ConcurrentTicketConflictError",
    "DataGapError",
    "DomainError",
    "InvalidTicketError",
    "InvalidTransitionError",
    "InvalidWindowError",
    "MixedReadingKindsError",
    "ReadingStoreUnavailableError",
    "ReportNotFoundError",
    "TicketNotFoundError",
    "TopologyInconsistencyError",
    "ZoneConfigurationError",
    "ZoneNotFoundError",
]
