# src/gridrecon_api/adapters/schemas/http/base.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Base HTTP Schema (Adapters Layer).

Purpose:
    Canonical Pydantic base for all adapter-layer HTTP schemas.

Layer: adapters/schemas/http

Notes:
    - Transport-facing only. Application DTOs must not import from this module.
    - Energy figures travel as decimal strings so clients never lose precision.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, PlainSerializer


def _iso_utc(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


#: Decimal serialized as a plain (non-exponent) string.
DecimalStr = Annotated[Decimal, PlainSerializer(lambda v: format(v, "f"), return_type=str)]

#: Timezone-aware datetime serialized as ISO-8601 with a ``Z`` suffix for UTC.
UtcDatetime = Annotated[datetime, PlainSerializer(_iso_utc, return_type=str)]


class BaseHTTPSchema(BaseModel):
    """Base class for all HTTP-facing schemas.

    Provides:
        • Strict ``extra='forbid'`` validation.
        • Enum values on the wire.
        • Consistent ``model_dump_http()`` for presenters and routers.
    """

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        str_strip_whitespace=True,
        ser_json_inf_nan="null",
        use_enum_values=True,
    )

    def model_dump_http(self, **kwargs: Any) -> dict[str, Any]:
        """Return a JSON-serializable dict suitable for HTTP responses."""
        return self.model_dump(mode="json", **kwargs)
