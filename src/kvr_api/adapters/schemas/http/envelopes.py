# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""HTTP Envelopes (Adapters Layer).

Purpose:
    Canonical transport-facing HTTP envelopes:
      - ErrorEnvelope: ``{"success": false, "error": ..., "code": ...}``
      - SuccessEnvelope[T]: ``{"success": true, "data": T}``

Error responses are rendered by ``kvr_api.infrastructure.http.errors``; the
model here documents that shape in OpenAPI. Details are merged into the top
level of the error body (e.g. ``retryAfter`` on 429).
"""

from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict, Field

from kvr_api.adapters.schemas.http.base import BaseHTTPSchema

__all__ = ["ERROR_RESPONSES", "ErrorEnvelope", "MessageEnvelope", "SuccessEnvelope"]


class ErrorEnvelope(BaseHTTPSchema):
    """Error body shared by every 4xx/5xx response."""

    model_config = ConfigDict(
        title="ErrorEnvelope",
        extra="allow",
        json_schema_extra={
            "examples": [
                {
                    "success": False,
                    "error": "Rate limit exceeded",
                    "code": "RATE_LIMIT_EXCEEDED",
                    "retryAfter": 1800,
                    "requestId": "c1e2d3f4",
                }
            ]
        },
    )

    success: Literal[False] = False
    error: str = Field(..., description="Human-readable error description.")
    code: str = Field(..., description="Stable machine-readable error code (UPPER_SNAKE_CASE).")
    request_id: str | None = Field(default=None, description="Request correlation identifier.")


class SuccessEnvelope[T](BaseHTTPSchema):
    r"""Success envelope for non-paginated responses: {"success": true, "data": T}."""

    model_config = ConfigDict(title="SuccessEnvelope")

    success: Literal[True] = True
    data: T = Field(..., description="Returned resource or value.")
    message: str | None = None


class MessageEnvelope(BaseHTTPSchema):
    """Success envelope carrying only a message."""

    success: Literal[True] = True
    message: str


ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    401: {"description": "Missing or invalid credentials", "model": ErrorEnvelope},
    403: {"description": "Authenticated but not authorized", "model": ErrorEnvelope},
    429: {"description": "API key rate limit exceeded", "model": ErrorEnvelope},
}
