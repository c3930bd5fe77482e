"""Unit tests for RequestContextMiddleware header and state rules."""

from __future__ import annotations

import uuid

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from kvr_api.infrastructure.logging.logger import get_request_id
from kvr_api.infrastructure.middleware.request_context import (
    REQUEST_ID_HEADER,
    RequestContextMiddleware,
    client_ip_of,
    coerce_request_id,
)


def _client() -> TestClient:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/echo")
    def echo(request: Request) -> dict:
        return {
            "rid": request.state.request_id,
            "ip": client_ip_of(request),
            "ctx": get_request_id(),
        }

    return TestClient(app)


def test_generates_request_id_and_binds_context() -> None:
    r = _client().get("/echo")

    body = r.json()
    assert r.status_code == 200
    assert uuid.UUID(body["rid"])
    assert r.headers[REQUEST_ID_HEADER] == body["rid"]
    assert body["ctx"] == body["rid"]
    assert body["ip"] == "testclient"


def test_safe_caller_id_is_kept() -> None:
    r = _client().get("/echo", headers={REQUEST_ID_HEADER: "trace:42@edge"})

    assert r.json()["rid"] == "trace:42@edge"
    assert r.headers[REQUEST_ID_HEADER] == "trace:42@edge"


def test_unsafe_caller_id_is_replaced() -> None:
    r = _client().get("/echo", headers={REQUEST_ID_HEADER: "bad id\twith spaces"})

    rid = r.json()["rid"]
    assert rid != "bad id\twith spaces"
    assert uuid.UUID(rid)


def test_coerce_request_id_limits_length() -> None:
    assert coerce_request_id("a" * 128) == "a" * 128
    assert coerce_request_id("a" * 129) != "a" * 129
    assert coerce_request_id(None)
