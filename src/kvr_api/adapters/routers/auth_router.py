# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Auth Router: ``/api/v1/auth``.

Local email/password sessions (login, refresh, logout, password change) and
the ``/me`` profile, which works for every credential family. Session
endpoints return ``AUTH_METHOD_UNAVAILABLE`` when local auth is disabled by
``AUTH_MODE``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from kvr_api.adapters.schemas.http import ERROR_RESPONSES, MessageEnvelope, SuccessEnvelope
from kvr_api.adapters.schemas.http.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LogoutRequest,
    ProfileView,
    RefreshRequest,
    SessionView,
)
from kvr_api.application.services.accounts import AccountService
from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.enums.auth import AuthSource
from kvr_api.domain.exceptions.auth import AuthMethodUnavailable
from kvr_api.infrastructure.auth.dependencies import (
    get_container,
    require_auth_source,
    require_principal,
)

router = APIRouter(prefix="/auth", tags=["Auth"])

LOCAL_ONLY = require_auth_source(AuthSource.LOCAL)


def get_accounts(request: Request) -> AccountService:
    accounts = get_container(request).accounts
    if accounts is None:
        raise AuthMethodUnavailable("Local authentication is disabled")
    return accounts


AccountsDep = Annotated[AccountService, Depends(get_accounts)]
PrincipalDep = Annotated[Principal, Depends(require_principal)]


@router.post(
    "/login",
    summary="Log in with email and password",
    response_model=SuccessEnvelope[SessionView],
    responses={401: ERROR_RESPONSES[401]},
)
async def login(payload: LoginRequest, accounts: AccountsDep) -> SuccessEnvelope[SessionView]:
    session = await accounts.login(payload.email, payload.password)
    return SuccessEnvelope[SessionView](data=SessionView.from_session(session))


@router.post(
    "/refresh",
    summary="Rotate a refresh token",
    response_model=SuccessEnvelope[SessionView],
    responses={401: ERROR_RESPONSES[401]},
)
async def refresh(payload: RefreshRequest, accounts: AccountsDep) -> SuccessEnvelope[SessionView]:
    session = await accounts.refresh(payload.refresh_token)
    return SuccessEnvelope[SessionView](data=SessionView.from_session(session))


@router.post(
    "/logout",
    summary="Revoke a refresh token",
    response_model=MessageEnvelope,
    responses={401: ERROR_RESPONSES[401]},
    dependencies=[Depends(require_principal)],
)
async def logout(accounts: AccountsDep, payload: LogoutRequest | None = None) -> MessageEnvelope:
    await accounts.logout(payload.refresh_token if payload is not None else None)
    return MessageEnvelope(message="Logged out successfully")


@router.get(
    "/me",
    summary="Current principal",
    response_model=SuccessEnvelope[ProfileView],
    responses={401: ERROR_RESPONSES[401], 403: ERROR_RESPONSES[403]},
)
async def me(request: Request, principal: PrincipalDep) -> SuccessEnvelope[ProfileView]:
    accounts = get_container(request).accounts
    if principal.auth_source is AuthSource.LOCAL and accounts is not None:
        identity, memberships = await accounts.profile(principal.user_id)
        view = ProfileView.from_principal(principal, identity, memberships)
    else:
        view = ProfileView.from_principal(principal)
    return SuccessEnvelope[ProfileView](data=view)


@router.put(
    "/password",
    summary="Change the password of a local account",
    response_model=MessageEnvelope,
    responses={401: ERROR_RESPONSES[401], 403: ERROR_RESPONSES[403]},
)
async def change_password(
    payload: ChangePasswordRequest,
    principal: Annotated[Principal, Depends(LOCAL_ONLY)],
    accounts: AccountsDep,
) -> MessageEnvelope:
    await accounts.change_password(
        principal.user_id, payload.current_password, payload.new_password
    )
    return MessageEnvelope(message="Password changed successfully")
