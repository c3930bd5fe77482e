# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Auth HTTP schemas: login, refresh, logout, password change and profile."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from kvr_api.adapters.schemas.http.base import BaseHTTPSchema
from kvr_api.application.services.accounts import SessionTokens
from kvr_api.domain.entities.auth_records import IdentityRecord, MembershipRecord
from kvr_api.domain.entities.principal import Principal

__all__ = [
    "ApiKeyContextView",
    "ChangePasswordRequest",
    "LoginRequest",
    "LogoutRequest",
    "MembershipView",
    "ProfileView",
    "RefreshRequest",
    "SessionView",
    "UserView",
]


class LoginRequest(BaseHTTPSchema):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseHTTPSchema):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseHTTPSchema):
    refresh_token: str | None = None


class ChangePasswordRequest(BaseHTTPSchema):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class UserView(BaseHTTPSchema):
    id: str
    email: str
    full_name: str | None = None
    roles: list[str]

    @classmethod
    def from_identity(cls, identity: IdentityRecord) -> UserView:
        return cls(
            id=identity.id,
            email=identity.email,
            full_name=identity.display_name,
            roles=list(identity.roles),
        )


class SessionView(BaseHTTPSchema):
    """Tokens returned by login and refresh."""

    user: UserView
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int

    @classmethod
    def from_session(cls, session: SessionTokens) -> SessionView:
        return cls(
            user=UserView.from_identity(session.identity),
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_in=session.expires_in,
        )


class MembershipView(BaseHTTPSchema):
    org_id: str
    org_name: str
    role: str
    is_default: bool

    @classmethod
    def from_record(cls, record: MembershipRecord) -> MembershipView:
        return cls(
            org_id=record.org_id,
            org_name=record.org_name,
            role=record.role,
            is_default=record.is_default,
        )


class ApiKeyContextView(BaseHTTPSchema):
    id: str
    name: str
    prefix: str
    scopes: list[str]
    workflow_ids: list[str]


class ProfileView(BaseHTTPSchema):
    """The caller as seen by the API, whatever the credential."""

    id: str
    email: str | None = None
    full_name: str | None = None
    roles: list[str]
    permissions: list[str] = Field(default_factory=list)
    auth_source: str
    external_id: str | None = None
    org_id: str | None = None
    org_name: str | None = None
    org_ids: list[str] = Field(default_factory=list)
    org_role: str | None = None
    is_active: bool | None = None
    created_at: datetime | None = None
    last_login_at: datetime | None = None
    memberships: list[MembershipView] = Field(default_factory=list)
    api_key: ApiKeyContextView | None = None

    @classmethod
    def from_principal(
        cls,
        principal: Principal,
        identity: IdentityRecord | None = None,
        memberships: list[MembershipRecord] | None = None,
    ) -> ProfileView:
        grant = principal.api_key
        return cls(
            id=principal.user_id,
            email=principal.email if identity is None else identity.email,
            full_name=principal.display_name if identity is None else identity.display_name,
            roles=list(principal.roles),
            permissions=list(principal.permissions),
            auth_source=principal.auth_source.value,
            external_id=principal.external_id,
            org_id=principal.org_id,
            org_name=principal.org_name,
            org_ids=list(principal.org_ids),
            org_role=principal.org_role,
            is_active=identity.is_active if identity is not None else None,
            created_at=identity.created_at if identity is not None else None,
            last_login_at=identity.last_login_at if identity is not None else None,
            memberships=[MembershipView.from_record(m) for m in memberships or []],
            api_key=(
                ApiKeyContextView(
                    id=grant.key_id,
                    name=grant.name,
                    prefix=grant.prefix,
                    scopes=list(grant.scopes),
                    workflow_ids=list(grant.workflow_ids),
                )
                if grant is not None
                else None
            ),
        )
