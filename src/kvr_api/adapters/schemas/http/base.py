# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Base HTTP Schema (Adapters Layer)

Purpose:
    Canonical Pydantic base for all adapter-layer HTTP schemas.
    Fields are snake_case in Python and camelCase on the wire.

Layer: adapters/schemas/http

Notes:
    - Transport-facing only. Application services must not import from this module.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseHTTPSchema(BaseModel):
    """Base class for all HTTP-facing schemas.

    Attributes:
        model_config: Pydantic v2 ``ConfigDict``; unknown fields are rejected,
            names are accepted in either casing and serialized as camelCase.
    """

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )

    def model_dump_http(self, **kwargs: Any) -> dict[str, Any]:
        """Return a JSON-serializable, camelCase dict suitable for HTTP responses."""
        return self.model_dump(mode="json", by_alias=True, **kwargs)
