# src/gridrecon_api/__init__.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""GridRecon API: zone energy reconciliation and audit ticketing."""

__version__ = "0.1.0"
