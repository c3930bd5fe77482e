from __future__ import annotations

from collections.abc import Awaitable, Callable

import pytest

from fixtures.api_harness import DEFAULT_PASSWORD, ApiHarness
from kvr_api.domain.interfaces.repositories.auth_repositories import IdentityRepository


@pytest.mark.anyio
async def test_login_me_refresh_logout(api: ApiHarness) -> None:
    await api.create_user("ana@example.com", roles=("ADMIN",), org_id="org-1", org_role="OWNER")

    session = await api.login("ana@example.com")
    assert session["tokenType"] == "Bearer"
    assert session["user"]["email"] == "ana@example.com"
    assert session["expiresIn"] > 0
    auth = {"Authorization": f"Bearer {session['accessToken']}"}

    me = await api.client.get("/api/v1/auth/me", headers=auth)
    assert me.status_code == 200
    profile = me.json()["data"]
    assert profile["authSource"] == "local"
    assert profile["roles"] == ["ADMIN"]
    assert profile["orgId"] == "org-1"
    assert profile["orgRole"] == "OWNER"
    assert [m["orgId"] for m in profile["memberships"]] == ["org-1"]
    assert profile["isActive"] is True

    refreshed = await api.client.post(
        "/api/v1/auth/refresh", json={"refreshToken": session["refreshToken"]}
    )
    assert refreshed.status_code == 200
    rotated = refreshed.json()["data"]
    assert rotated["refreshToken"] != session["refreshToken"]

    reused = await api.client.post(
        "/api/v1/auth/refresh", json={"refreshToken": session["refreshToken"]}
    )
    assert reused.status_code == 401
    assert reused.json()["code"] == "INVALID_REFRESH_TOKEN"

    out = await api.client.post(
        "/api/v1/auth/logout",
        json={"refreshToken": rotated["refreshToken"]},
        headers={"Authorization": f"Bearer {rotated['accessToken']}"},
    )
    assert out.status_code == 200
    assert out.json() == {"success": True, "message": "Logged out successfully"}

    after = await api.client.post(
        "/api/v1/auth/refresh", json={"refreshToken": rotated["refreshToken"]}
    )
    assert after.status_code == 401


@pytest.mark.anyio
async def test_login_records_last_login(api: ApiHarness) -> None:
    await api.create_user("bob@example.com")

    await api.login("bob@example.com")

    async with api.container.uow_factory() as uow:
        identity = await uow.get_repository(IdentityRepository).get_by_email("bob@example.com")
    assert identity is not None
    assert identity.last_login_at is not None


@pytest.mark.anyio
async def test_wrong_password_is_rejected(api: ApiHarness) -> None:
    await api.create_user("ana@example.com")

    r = await api.client.post(
        "/api/v1/auth/login", json={"email": "ana@example.com", "password": "nope"}
    )

    assert r.status_code == 401
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "INVALID_CREDENTIALS"
    assert "requestId" in body


@pytest.mark.anyio
async def test_missing_token_on_me(api: ApiHarness) -> None:
    r = await api.client.get("/api/v1/auth/me")

    assert r.status_code == 401
    assert r.json()["code"] == "NO_TOKEN"


@pytest.mark.anyio
async def test_change_password(api: ApiHarness) -> None:
    await api.create_user("ana@example.com")
    session = await api.login("ana@example.com")
    auth = {"Authorization": f"Bearer {session['accessToken']}"}

    r = await api.client.put(
        "/api/v1/auth/password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "a-much-better-one"},
        headers=auth,
    )
    assert r.status_code == 200

    old = await api.client.post(
        "/api/v1/auth/login", json={"email": "ana@example.com", "password": DEFAULT_PASSWORD}
    )
    assert old.status_code == 401
    await api.login("ana@example.com", "a-much-better-one")


@pytest.mark.anyio
async def test_password_change_needs_local_session(api: ApiHarness) -> None:
    owner = await api.create_user("ana@example.com")
    key = await api.issue_key(owner)

    r = await api.client.put(
        "/api/v1/auth/password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "a-much-better-one"},
        headers={"X-API-Key": key},
    )
    await api.settle()

    assert r.status_code == 403
    assert r.json()["code"] == "AUTH_SOURCE_NOT_ALLOWED"


@pytest.mark.anyio
async def test_login_unavailable_in_tah_only_mode(
    api_factory: Callable[..., Awaitable[ApiHarness]],
) -> None:
    harness = await api_factory(AUTH_MODE="tah", JWT_SECRET=None)

    r = await harness.client.post(
        "/api/v1/auth/login", json={"email": "ana@example.com", "password": "whatever"}
    )

    assert r.status_code == 401
    assert r.json()["code"] == "AUTH_METHOD_UNAVAILABLE"


@pytest.mark.anyio
async def test_dev_bypass_without_credentials(
    api_factory: Callable[..., Awaitable[ApiHarness]],
) -> None:
    harness = await api_factory(DEV_AUTH_BYPASS=True, DEV_ORG_ID="dev-org")

    r = await harness.client.get("/api/v1/protected/whoami")

    assert r.status_code == 200
    body = r.json()
    assert body["authenticated"] is True
    assert body["authSource"] == "dev-bypass"
    assert body["orgId"] == "dev-org"
