from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from fixtures.auth_testkit import TEST_JWT_SECRET, FixedClock
from kvr_api.config.features.auth import LocalJwtSettings
from kvr_api.domain.enums.auth import AuthSource
from kvr_api.domain.exceptions.auth import InvalidToken
from kvr_api.infrastructure.security.local_tokens import LocalTokenService, OrgContext


def _service(clock: FixedClock | None = None, **overrides: object) -> LocalTokenService:
    cfg = LocalJwtSettings(
        enabled=True, secret=TEST_JWT_SECRET, **overrides  # type: ignore[arg-type]
    )
    return LocalTokenService(cfg, clock=clock) if clock else LocalTokenService(cfg)


def _encode(payload: dict[str, object], secret: str = TEST_JWT_SECRET) -> str:
    return jwt.encode(payload, secret, algorithm="HS256")


def test_issue_and_validate_round_trip() -> None:
    service = _service()
    token = service.issue_access_token(
        user_id="u-1",
        email="ana@example.com",
        roles=["ADMIN"],
        display_name="Ana",
        org=OrgContext(org_id="org-1", org_ids=["org-1", "org-2"], org_role="OWNER"),
    )

    principal = service.validate(token)

    assert principal.user_id == "u-1"
    assert principal.email == "ana@example.com"
    assert principal.display_name == "Ana"
    assert principal.roles == ("ADMIN",)
    assert principal.auth_source is AuthSource.LOCAL
    assert principal.org_id == "org-1"
    assert principal.org_ids == ("org-1", "org-2")
    assert principal.org_role == "OWNER"
    assert principal.token_expiry is not None


def test_expired_token_is_rejected() -> None:
    # Signed a day in the past; validation checks exp against the wall clock.
    past = FixedClock()
    past.now = past.now - timedelta(days=1)
    stale = _service(past, access_ttl_seconds=60).issue_access_token(
        user_id="u-1", email="a@example.com", roles=["USER"]
    )

    with pytest.raises(InvalidToken):
        _service().validate(stale)


def test_wrong_secret_is_rejected() -> None:
    token = _encode(
        {"sub": "u-1", "exp": 4_102_444_800}, secret="another-secret-value-that-is-long-enough"
    )
    with pytest.raises(InvalidToken):
        _service().validate(token)


def test_token_without_expiry_is_rejected() -> None:
    with pytest.raises(InvalidToken):
        _service().validate(_encode({"sub": "u-1"}))


@pytest.mark.parametrize("id_claim", ["userId", "id", "sub"])
def test_legacy_user_id_claims_are_accepted(id_claim: str) -> None:
    principal = _service().validate(_encode({id_claim: "legacy-7", "exp": 4_102_444_800}))
    assert principal.user_id == "legacy-7"


def test_singular_role_claim_and_default_role() -> None:
    service = _service()
    single = service.validate(_encode({"sub": "u", "role": "ADMIN", "exp": 4_102_444_800}))
    none = service.validate(_encode({"sub": "u", "exp": 4_102_444_800}))

    assert single.roles == ("ADMIN",)
    assert none.roles == ("USER",)


@pytest.mark.parametrize("roles", [[], [""], [None], ["  ", None]])
def test_blank_role_lists_fall_back_to_user(roles: list[object]) -> None:
    principal = _service().validate(_encode({"sub": "u", "roles": roles, "exp": 4_102_444_800}))
    assert principal.roles == ("USER",)


def test_token_without_user_id_is_rejected() -> None:
    with pytest.raises(InvalidToken, match="no user id"):
        _service().validate(_encode({"email": "x@example.com", "exp": 4_102_444_800}))


def test_unconfigured_secret_rejects_everything() -> None:
    service = LocalTokenService(LocalJwtSettings(enabled=False, secret=""))
    with pytest.raises(InvalidToken):
        service.validate(_encode({"sub": "u", "exp": 4_102_444_800}))
