# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Local (HS256) access tokens.

Issues and validates the access tokens produced by the email/password login
flow. Validation accepts legacy token shapes: the user id may be carried as
``userId``, ``id`` or ``sub``, and roles as a ``roles`` list or a singular
``role``.

This module is framework-agnostic; HTTP concerns live in
``infrastructure/auth/dependencies.py``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt  # PyJWT

from kvr_api.config.features.auth import LocalJwtSettings
from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.enums.auth import AuthSource, Role
from kvr_api.domain.exceptions.auth import InvalidToken

__all__ = ["LocalTokenService", "OrgContext"]

_ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class OrgContext:
    """Organization fields stamped into an access token."""

    __slots__ = ("org_id", "org_ids", "org_role")

    def __init__(
        self, org_id: str | None = None, org_ids: Sequence[str] = (), org_role: str | None = None
    ) -> None:
        self.org_id = org_id
        self.org_ids = tuple(org_ids)
        self.org_role = org_role


def _roles_from_claims(claims: Mapping[str, Any]) -> tuple[str, ...]:
    roles = claims.get("roles")
    if isinstance(roles, list):
        named = tuple(r.strip() for r in roles if isinstance(r, str) and r.strip())
        if named:
            return named
    role = claims.get("role")
    if isinstance(role, str) and role.strip():
        return (role.strip(),)
    return (Role.USER.value,)


class LocalTokenService:
    """Issue and verify local HS256 access tokens.

    Args:
        settings: Local JWT configuration (secret, lifetimes, issuer).
        clock: Returns the current aware UTC datetime; injectable for tests.
    """

    def __init__(self, settings: LocalJwtSettings, clock: Callable[[], datetime] = _utcnow):
        self._settings = settings
        self._clock = clock

    @property
    def access_ttl_seconds(self) -> int:
        return self._settings.access_ttl_seconds

    def issue_access_token(
        self,
        *,
        user_id: str,
        email: str,
        roles: Sequence[str],
        display_name: str | None = None,
        org: OrgContext | None = None,
    ) -> str:
        """Sign an access token for a local identity."""
        now = self._clock()
        org = org or OrgContext()
        payload: dict[str, Any] = {
            "sub": user_id,
            "userId": user_id,
            "email": email,
            "fullName": display_name,
            "roles": list(roles),
            "orgId": org.org_id,
            "orgIds": list(org.org_ids),
            "orgRole": org.org_role,
            "iss": self._settings.issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self._settings.access_ttl_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._settings.secret, algorithm=_ALGORITHM)

    def validate(self, token: str) -> Principal:
        """Verify signature and expiry and build a ``local`` principal.

        Raises:
            InvalidToken: On any signature, expiry or structural failure.
        """
        if not self._settings.secret:
            raise InvalidToken("Local tokens are not configured")
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                self._settings.secret,
                algorithms=[_ALGORITHM],
                options={"verify_aud": False, "require": ["exp"]},
            )
        except jwt.PyJWTError as exc:
            raise InvalidToken(str(exc) or "Invalid token") from exc

        user_id = claims.get("userId") or claims.get("id") or claims.get("sub")
        if not user_id:
            raise InvalidToken("Token carries no user id")

        org_ids = claims.get("orgIds")
        exp = claims.get("exp")
        return Principal(
            user_id=str(user_id),
            email=claims.get("email"),
            display_name=claims.get("fullName"),
            roles=_roles_from_claims(claims),
            auth_source=AuthSource.LOCAL,
            org_id=claims.get("orgId"),
            org_ids=tuple(str(o) for o in org_ids) if isinstance(org_ids, list) else (),
            org_role=claims.get("orgRole"),
            token_expiry=datetime.fromtimestamp(exp, tz=UTC) if isinstance(exp, int) else None,
        )
