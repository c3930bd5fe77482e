# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""HTTP error envelope and exception handlers.

Every error response shares one JSON shape::

    {"success": false, "error": "<message>", "code": "<CODE>", ...details}

Domain errors carry their own status and code; rate-limit errors also set a
``Retry-After`` header.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from kvr_api.domain.exceptions.auth import RateLimitExceeded
from kvr_api.domain.exceptions.base import DomainError
from kvr_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def error_envelope(
    *,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "error": message, "code": code}
    if details:
        for key, value in details.items():
            payload.setdefault(key, value)
    if request_id is not None:
        payload["requestId"] = request_id
    return payload


async def handle_domain_error(request: Request, exc: DomainError) -> Response:
    payload = error_envelope(
        code=exc.code,
        message=exc.message,
        details=exc.details,
        request_id=_request_id(request),
    )
    headers: dict[str, str] | None = None
    if isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.http_status, content=jsonable_encoder(payload), headers=headers
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> Response:
    payload = error_envelope(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=422, content=payload)


async def handle_http_exception(request: Request, exc: HTTPException) -> Response:
    payload = error_envelope(
        code="HTTP_ERROR",
        message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
        details=None if isinstance(exc.detail, str) else {"detail": exc.detail},
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)


async def handle_unhandled_exception(request: Request, exc: Exception) -> Response:
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={"extra": {"path": request.url.path}},
    )
    payload = error_envelope(
        code="INTERNAL_ERROR",
        message="Internal server error",
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=500, content=payload)
