from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel

from kvr_api.domain.exceptions.auth import InvalidApiKey, RateLimitExceeded
from kvr_api.domain.exceptions.base import DomainError
from kvr_api.infrastructure.http import errors


class Payload(BaseModel):
    value: int


def test_error_envelope_flattens_details() -> None:
    payload = errors.error_envelope(
        code="INSUFFICIENT_SCOPE",
        message="API key missing required scope",
        details={"required": "resources:write", "code": "ignored"},
        request_id="req-1",
    )

    assert payload == {
        "success": False,
        "error": "API key missing required scope",
        "code": "INSUFFICIENT_SCOPE",
        "required": "resources:write",
        "requestId": "req-1",
    }


def _make_app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(DomainError, errors.handle_domain_error)
    app.add_exception_handler(RequestValidationError, errors.handle_validation_error)
    app.add_exception_handler(HTTPException, errors.handle_http_exception)
    app.add_exception_handler(Exception, errors.handle_unhandled_exception)

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore[no-untyped-def]
        request.state.request_id = "req-xyz"
        return await call_next(request)

    @app.post("/validation")
    async def validation_route(body: Payload) -> dict[str, Any]:
        return {"value": body.value}

    @app.get("/invalid-key")
    async def invalid_key() -> None:
        raise InvalidApiKey()

    @app.get("/limited")
    async def limited() -> None:
        raise RateLimitExceeded(retry_after=42)

    @app.get("/http-exc")
    async def http_exc() -> None:
        raise HTTPException(status_code=404, detail="not found")

    @app.get("/unhandled")
    async def unhandled() -> None:
        raise RuntimeError("boom")

    return app


def test_domain_error_uses_its_status_and_code() -> None:
    resp = TestClient(_make_app()).get("/invalid-key")

    assert resp.status_code == 401
    assert resp.json() == {
        "success": False,
        "error": "Invalid API key",
        "code": "INVALID_API_KEY",
        "requestId": "req-xyz",
    }


def test_rate_limit_sets_retry_after_header() -> None:
    resp = TestClient(_make_app()).get("/limited")

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "42"
    assert resp.json()["retryAfter"] == 42


def test_validation_error_envelope() -> None:
    resp = TestClient(_make_app()).post("/validation", json={"value": "not-an-int"})

    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["errors"]


def test_http_exception_envelope() -> None:
    resp = TestClient(_make_app()).get("/http-exc")

    assert resp.status_code == 404
    assert resp.json()["error"] == "not found"


def test_unhandled_exception_is_500_without_leaking() -> None:
    resp = TestClient(_make_app(), raise_server_exceptions=False).get("/unhandled")

    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "INTERNAL_ERROR"
    assert "boom" not in resp.text
