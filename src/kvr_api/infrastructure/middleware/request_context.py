# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Request Context Middleware.

Summary:
    Opens the per-request context every other layer relies on: a correlation
    id (caller-provided ``X-Request-ID`` when it is safe, else a UUID4) and
    the client address recorded against API key usage.

Contract:
    • Reads:  X-Request-ID (optional)
    • Writes: X-Request-ID (always)
    • Stores: request.state.request_id, request.state.client_ip
    • Logging: request id and client ip are bound for the duration of the
      request and reset afterwards; the auth dependencies add the principal.
"""

from __future__ import annotations

import re
import uuid
from typing import Final

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from kvr_api.infrastructure.logging.logger import reset_request_context, set_request_context

REQUEST_ID_HEADER: Final[str] = "X-Request-ID"
_SAFE_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9\-_.:@]{1,128}$")


def coerce_request_id(raw: str | None) -> str:
    """Return ``raw`` when it is a safe opaque token, else a new UUID4."""
    if raw and _SAFE_RE.match(raw):
        return raw
    return str(uuid.uuid4())


def client_ip_of(request: Request) -> str | None:
    """Client address as recorded on the request, if the server reported one."""
    ip: str | None = getattr(request.state, "client_ip", None)
    if ip is None and request.client is not None:
        ip = request.client.host
    return ip


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = coerce_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        request.state.client_ip = request.client.host if request.client else None

        tokens = set_request_context(request_id=request_id, client_ip=request.state.client_ip)
        try:
            response = await call_next(request)
        finally:
            reset_request_context(tokens)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response
