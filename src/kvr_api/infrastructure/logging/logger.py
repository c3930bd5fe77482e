# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Structured JSON logging utilities.

This module exposes an idempotent root configurator and a per-module logger
factory that produce JSON logs suitable for ingestion by log pipelines.

Features:
    * Stable keys: ``ts``, ``level``, ``logger``, ``message``.
    * Request correlation: ``request_id`` and ``client_ip`` bound by the
      request-context middleware.
    * Caller identity: once a request is authenticated, ``user_id``,
      ``org_id`` and ``auth_source`` are added to every line it logs.
    * Structured fields passed as ``extra={"extra": {...}}`` are merged into
      the payload. Credential-bearing keys (passwords, tokens, API keys,
      hashes) are replaced with ``"[redacted]"``.

Typical usage:
    configure_root_logging()
    log = get_json_logger(__name__)
    log.info("jwks.refreshed", extra={"extra": {"key_count": 2}})
"""

from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "REDACTED",
    "RequestContextTokens",
    "bind_principal_context",
    "configure_root_logging",
    "get_json_logger",
    "get_request_id",
    "reset_request_context",
    "set_request_context",
]

REDACTED = "[redacted]"

_SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "api_key",
        "authorization",
        "key",
        "key_hash",
        "password",
        "password_hash",
        "refresh_token",
        "secret",
        "token",
    }
)

_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("kvr_request_id", default=None)
_CLIENT_IP_CTX: ContextVar[str | None] = ContextVar("kvr_client_ip", default=None)
_PRINCIPAL_CTX: ContextVar[dict[str, str] | None] = ContextVar("kvr_principal", default=None)


@dataclass(frozen=True)
class RequestContextTokens:
    """Tokens returned by :func:`set_request_context`, for a later reset."""

    request_id: Token[str | None]
    client_ip: Token[str | None]
    principal: Token[dict[str, str] | None]


def set_request_context(
    *, request_id: str | None = None, client_ip: str | None = None
) -> RequestContextTokens:
    """Start a fresh logging context for one request.

    Any principal bound by a previous request on the same context is cleared.
    """
    return RequestContextTokens(
        request_id=_REQUEST_ID_CTX.set(request_id),
        client_ip=_CLIENT_IP_CTX.set(client_ip),
        principal=_PRINCIPAL_CTX.set(None),
    )


def reset_request_context(tokens: RequestContextTokens) -> None:
    _PRINCIPAL_CTX.reset(tokens.principal)
    _CLIENT_IP_CTX.reset(tokens.client_ip)
    _REQUEST_ID_CTX.reset(tokens.request_id)


def bind_principal_context(
    *, user_id: str, auth_source: str, org_id: str | None = None
) -> None:
    """Attach the authenticated caller to log lines emitted from here on."""
    bound = {"user_id": user_id, "auth_source": auth_source}
    if org_id:
        bound["org_id"] = org_id
    _PRINCIPAL_CTX.set(bound)


def get_request_id() -> str | None:
    """Return the current request id from contextvars, if any."""
    return _REQUEST_ID_CTX.get(None)


def _redact(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: REDACTED if k.lower() in _SENSITIVE_KEYS else v for k, v in fields.items()}


class _JsonFormatter(logging.Formatter):
    """JSON log formatter emitting stable keys, request context and extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        rid = getattr(record, "request_id", None) or _REQUEST_ID_CTX.get(None)
        if rid:
            payload["request_id"] = rid
        client_ip = _CLIENT_IP_CTX.get(None)
        if client_ip:
            payload["client_ip"] = client_ip
        principal = _PRINCIPAL_CTX.get(None)
        if principal:
            payload.update(principal)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            if exc_type is not None:
                payload["exc_type"] = exc_type.__name__
            if exc_value is not None:
                payload["exc_message"] = str(exc_value)

        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(_redact(extra))

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def configure_root_logging(level: str | int | None = None) -> None:
    """Initialize the root logger with a JSON stream handler (idempotent).

    Args:
        level: Logging level or level name. If ``None``, use env ``LOG_LEVEL`` or ``INFO``.
    """
    root = logging.getLogger()

    env_level = os.getenv("LOG_LEVEL")
    resolved: int | str = (
        level if level is not None else (env_level.upper() if env_level else "INFO")
    )
    root.setLevel(resolved)

    if root.handlers:
        # Already configured; prevent duplicate handlers on hot reload.
        return

    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter())
    root.addHandler(handler)


def get_json_logger(name: str) -> logging.Logger:
    """Return a module-specific logger backed by the JSON root handler.

    This does *not* implicitly configure the root logger; call
    :func:`configure_root_logging` once at startup.
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
