# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""HTTP Schemas package (Adapters Layer).

Purpose:
    Public, adapter-facing HTTP schema surface for KVR.

    Re-exports the canonical envelopes used by routers. Resource schemas are
    imported from their own modules. BaseHTTPSchema stays internal.

Layer:
    adapters/schemas/http
"""

from __future__ import annotations

from kvr_api.adapters.schemas.http.envelopes import (
    ERROR_RESPONSES,
    ErrorEnvelope,
    MessageEnvelope,
    SuccessEnvelope,
)

__all__ = [
    "ERROR_RESPONSES",
    "ErrorEnvelope",
    "MessageEnvelope",
    "SuccessEnvelope",
]
