# src/gridrecon_api/config/__init__.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""
Config package export.

Keeps import sites clean and stable:
    from gridrecon_api.config import get_settings, Settings
"""

from __future__ import annotations

from .settings import Environment, LockBackend, Settings, get_settings

__all__ = ["Environment", "LockBackend", "Settings", "get_settings"]
