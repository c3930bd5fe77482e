# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Access Log Middleware.

Summary:
    Emits one structured ``access_log`` entry per request, tagged with the
    caller resolved by the auth dependencies.

Fields:
    method, path, status, elapsed_ms, client_ip, request_id, ok and, for
    authenticated requests, user_id, org_id, auth_source and the API key id
    and display prefix. Server errors are logged at WARNING.

Credential headers (``Authorization``, ``X-API-Key``), the query string and
API key secrets are never logged.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from kvr_api.domain.entities.principal import Principal
from kvr_api.infrastructure.logging.logger import get_json_logger
from kvr_api.infrastructure.middleware.request_context import client_ip_of

_logger: logging.Logger = get_json_logger(__name__)


def principal_fields(principal: Principal | None) -> dict[str, Any]:
    """Loggable identity of ``principal``; empty for anonymous requests."""
    if principal is None:
        return {}
    fields: dict[str, Any] = {
        "user_id": principal.user_id,
        "org_id": principal.org_id,
        "auth_source": principal.auth_source.value,
    }
    if principal.api_key is not None:
        fields["api_key_id"] = principal.api_key.key_id
        fields["key_prefix"] = principal.api_key.prefix
    return fields


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            entry: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "elapsed_ms": round((time.perf_counter() - started) * 1000.0, 2),
                "client_ip": client_ip_of(request),
                "request_id": getattr(request.state, "request_id", None),
                "ok": status < 500,
            }
            entry.update(principal_fields(getattr(request.state, "principal", None)))
            level = logging.WARNING if status >= 500 else logging.INFO
            _logger.log(level, "access_log", extra={"extra": entry})
