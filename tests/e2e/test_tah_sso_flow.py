from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator

import httpx
import pytest
import respx

from fixtures.api_harness import ApiHarness
from fixtures.auth_testkit import TAH_JWKS_URL, RsaSigner, tah_claims
from kvr_api.domain.interfaces.repositories.auth_repositories import (
    IdentityRepository,
    MembershipRepository,
)


@pytest.fixture
def jwks(signer: RsaSigner) -> Iterator[respx.Route]:
    with respx.mock(assert_all_called=False) as mock:
        route = mock.get(TAH_JWKS_URL).mock(
            return_value=httpx.Response(200, json={"keys": [signer.jwk]})
        )
        yield route


@pytest.mark.anyio
async def test_sso_token_maps_roles_and_creates_shadow_identity(
    api: ApiHarness, signer: RsaSigner, jwks: respx.Route
) -> None:
    await api.create_organization("org-1", "Org One")
    token = signer.sign(tah_claims(roles=["gestor"], org_role="admin"))
    headers = {"Authorization": f"Bearer {token}"}

    me = await api.client.get("/api/v1/auth/me", headers=headers)
    admin = await api.client.get("/api/v1/protected/admin", headers=headers)

    assert me.status_code == 200
    profile = me.json()["data"]
    assert profile["authSource"] == "external"
    assert profile["externalId"] == "tah-user-1"
    assert profile["roles"] == ["ADMIN"]
    assert profile["orgId"] == "org-1"
    assert profile["orgRole"] == "ADMIN"
    assert admin.status_code == 200
    assert jwks.call_count == 1

    async with api.container.uow_factory() as uow:
        identity = await uow.get_repository(IdentityRepository).find_by_external_id_or_email(
            "tah-user-1", None
        )
        assert identity is not None
        memberships = await uow.get_repository(MembershipRepository).list_for_identity(
            identity.id
        )
    assert identity.id == profile["id"]
    assert identity.email == "ana@example.com"
    assert [(m.org_id, m.role, m.is_default) for m in memberships] == [("org-1", "ADMIN", True)]


@pytest.mark.anyio
async def test_sso_user_without_admin_role_is_forbidden(
    api: ApiHarness, signer: RsaSigner, jwks: respx.Route
) -> None:
    token = signer.sign(tah_claims())

    r = await api.client.get(
        "/api/v1/protected/admin", headers={"Authorization": f"Bearer {token}"}
    )

    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"


@pytest.mark.anyio
async def test_feature_permission_from_sso_claims(
    api: ApiHarness, signer: RsaSigner, jwks: respx.Route
) -> None:
    token = signer.sign(tah_claims(permissions=["kvr.resources:read"]))
    headers = {"Authorization": f"Bearer {token}"}

    allowed = await api.client.get(
        "/api/v1/protected/features/kvr.resources/read", headers=headers
    )
    denied = await api.client.get(
        "/api/v1/protected/features/kvr.resources/delete", headers=headers
    )

    assert allowed.status_code == 200
    assert allowed.json()["permission"] == "kvr.resources:read"
    assert denied.status_code == 403


@pytest.mark.anyio
async def test_expired_sso_token_hides_diagnostics(
    api: ApiHarness, signer: RsaSigner, jwks: respx.Route
) -> None:
    token = signer.sign(tah_claims(exp=1_000_000))

    r = await api.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert r.status_code == 401
    body = r.json()
    assert body["code"] == "INVALID_TOKEN"
    assert "reason" not in body


@pytest.mark.anyio
async def test_unreachable_jwks_rejects_token(api: ApiHarness, signer: RsaSigner) -> None:
    token = signer.sign(tah_claims())

    with respx.mock(assert_all_called=False) as mock:
        route = mock.get(TAH_JWKS_URL).mock(return_value=httpx.Response(503))
        r = await api.client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
        )

    assert route.called
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_TOKEN"


@pytest.mark.anyio
async def test_sso_token_rejected_in_local_mode(
    api_factory: Callable[..., Awaitable[ApiHarness]], signer: RsaSigner
) -> None:
    harness = await api_factory(AUTH_MODE="local")
    token = signer.sign(tah_claims())

    r = await harness.client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
    )

    assert r.status_code == 401
