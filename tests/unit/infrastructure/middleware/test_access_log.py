"""Unit tests for the structured access log entries."""

from __future__ import annotations

import logging

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from kvr_api.domain.entities.principal import ApiKeyGrant, Principal
from kvr_api.domain.enums.auth import AuthSource
from kvr_api.infrastructure.middleware.access_log import AccessLogMiddleware
from kvr_api.infrastructure.middleware.request_context import RequestContextMiddleware

LOGGER = "kvr_api.infrastructure.middleware.access_log"


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestContextMiddleware)

    @app.get("/open")
    def open_route() -> dict:
        return {"ok": True}

    @app.get("/keyed")
    def keyed(request: Request) -> dict:
        request.state.principal = Principal(
            user_id="user-1",
            email=None,
            auth_source=AuthSource.API_KEY,
            org_id="org-1",
            api_key=ApiKeyGrant(key_id="key-1", name="ci", prefix="kvr_live_abc"),
        )
        return {"ok": True}

    @app.get("/boom")
    def boom() -> None:
        raise RuntimeError("boom")

    return app


def _entries(caplog: pytest.LogCaptureFixture) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.name == LOGGER and r.getMessage() == "access_log"]


def test_anonymous_request_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger=LOGGER):
        TestClient(_app()).get("/open?token=secret", headers={"X-Request-ID": "req-1"})

    (record,) = _entries(caplog)
    entry = record.extra  # type: ignore[attr-defined]
    assert record.levelno == logging.INFO
    assert entry["path"] == "/open"
    assert entry["status"] == 200
    assert entry["request_id"] == "req-1"
    assert entry["ok"] is True
    assert "user_id" not in entry
    assert "secret" not in str(entry)


def test_api_key_caller_is_tagged_without_secret(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger=LOGGER):
        TestClient(_app()).get("/keyed", headers={"X-API-Key": "kvr_live_abcdef0123456789"})

    entry = _entries(caplog)[0].extra  # type: ignore[attr-defined]
    assert entry["user_id"] == "user-1"
    assert entry["org_id"] == "org-1"
    assert entry["auth_source"] == "api-key"
    assert entry["api_key_id"] == "key-1"
    assert entry["key_prefix"] == "kvr_live_abc"
    assert "kvr_live_abcdef0123456789" not in str(entry)


def test_server_errors_are_logged_at_warning(caplog: pytest.LogCaptureFixture) -> None:
    client = TestClient(_app(), raise_server_exceptions=False)
    with caplog.at_level(logging.INFO, logger=LOGGER):
        client.get("/boom")

    (record,) = _entries(caplog)
    assert record.levelno == logging.WARNING
    assert record.extra["status"] == 500  # type: ignore[attr-defined]
    assert record.extra["ok"] is False  # type: ignore[attr-defined]
