from __future__ import annotations

import contextvars
import json
import logging
import sys

import pytest

from kvr_api.infrastructure.logging.logger import (
    REDACTED,
    _JsonFormatter,  # internal but importable
    bind_principal_context,
    configure_root_logging,
    get_request_id,
    reset_request_context,
    set_request_context,
)


def _render(msg: str, level: int = logging.INFO, **attrs: object) -> dict:
    """Format a hand-built record and return the parsed JSON payload."""
    logger = logging.getLogger("test.kvr.logger")
    record = logger.makeRecord(
        name=logger.name,
        level=level,
        fn="test_json_logger",
        lno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return json.loads(_JsonFormatter().format(record))


def test_configure_root_logging_installs_json_handler(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")
    root = logging.getLogger()
    saved = root.handlers[:]
    root.handlers.clear()
    try:
        configure_root_logging()
        configure_root_logging()

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, _JsonFormatter)
    finally:
        root.handlers[:] = saved


def test_stable_keys() -> None:
    payload = _render("auth.login")

    assert payload["message"] == "auth.login"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.kvr.logger"
    assert "ts" in payload


def test_structured_extra_is_merged() -> None:
    payload = _render("auth.api_key_rejected", extra={"reason": "INVALID_API_KEY"})

    assert payload["reason"] == "INVALID_API_KEY"


def test_request_id_from_record_then_context() -> None:
    assert _render("x", request_id="abc-123")["request_id"] == "abc-123"

    def _in_request() -> dict:
        set_request_context(request_id="ctx-9")
        assert get_request_id() == "ctx-9"
        return _render("y")

    assert contextvars.copy_context().run(_in_request)["request_id"] == "ctx-9"


def test_exception_info_is_summarized() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        payload = _render("failure", logging.ERROR, exc_info=sys.exc_info())

    assert payload["exc_type"] == "ValueError"
    assert payload["exc_message"] == "boom"


def test_credential_extras_are_redacted() -> None:
    payload = _render(
        "auth.login",
        extra={"email": "a@example.com", "password": "hunter22", "Api_Key": "kvr_live_x"},
    )

    assert payload["email"] == "a@example.com"
    assert payload["password"] == REDACTED
    assert payload["Api_Key"] == REDACTED


def test_client_ip_and_principal_are_bound_per_request() -> None:
    def _in_request() -> tuple[dict, dict]:
        set_request_context(request_id="r-1", client_ip="10.0.0.7")
        before = _render("pre-auth")
        bind_principal_context(user_id="u-1", auth_source="local", org_id="org-1")
        return before, _render("post-auth")

    before, after = contextvars.copy_context().run(_in_request)

    assert before["client_ip"] == "10.0.0.7"
    assert "user_id" not in before
    assert after["user_id"] == "u-1"
    assert after["auth_source"] == "local"
    assert after["org_id"] == "org-1"


def test_principal_without_org_omits_org_id() -> None:
    def _in_request() -> dict:
        set_request_context(request_id="r-2")
        bind_principal_context(user_id="u-2", auth_source="external")
        return _render("x")

    payload = contextvars.copy_context().run(_in_request)

    assert payload["auth_source"] == "external"
    assert "org_id" not in payload


def test_reset_restores_outer_context() -> None:
    def _nested() -> tuple[str | None, dict]:
        outer = set_request_context(request_id="outer")
        bind_principal_context(user_id="u-1", auth_source="local")
        inner = set_request_context(request_id="inner", client_ip="127.0.0.1")
        inner_payload = _render("inner")
        reset_request_context(inner)
        restored = get_request_id()
        after_inner = _render("outer")
        reset_request_context(outer)
        assert "user_id" not in inner_payload
        assert "client_ip" not in after_inner
        return restored, after_inner

    restored, payload = contextvars.copy_context().run(_nested)

    assert restored == "outer"
    assert payload["user_id"] == "u-1"
