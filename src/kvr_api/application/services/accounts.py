# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Local account flows: login, refresh, logout, password change.

Refresh tokens are opaque UUIDs stored server-side. Refreshing rotates the
token (old one deleted, new one issued); an unknown or expired token fails
closed.

Layer: application/services
"""
from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from kvr_api.application.uow import UnitOfWork, UnitOfWorkFactory
from kvr_api.domain.entities.auth_records import IdentityRecord, MembershipRecord
from kvr_api.domain.exceptions.auth import InvalidCredentials, InvalidRefreshToken
from kvr_api.domain.exceptions.base import NotFound
from kvr_api.domain.interfaces.repositories.auth_repositories import (
    IdentityRepository,
    MembershipRepository,
    RefreshTokenRepository,
)
from kvr_api.infrastructure.logging.logger import get_json_logger
from kvr_api.infrastructure.security.local_tokens import LocalTokenService, OrgContext
from kvr_api.infrastructure.security.passwords import hash_password, verify_password

logger = get_json_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class SessionTokens:
    access_token: str
    refresh_token: str
    expires_in: int
    identity: IdentityRecord
    memberships: tuple[MembershipRecord, ...]


def org_context_for(memberships: list[MembershipRecord]) -> OrgContext:
    """Primary org is the default membership, else the oldest one."""
    if not memberships:
        return OrgContext()
    primary = memberships[0]
    return OrgContext(
        org_id=primary.org_id,
        org_ids=[m.org_id for m in memberships],
        org_role=primary.role,
    )


class AccountService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        tokens: LocalTokenService,
        *,
        refresh_ttl_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._tokens = tokens
        self._refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self._clock = clock

    async def login(self, email: str, password: str) -> SessionTokens:
        """Verify email/password and open a session.

        Raises:
            InvalidCredentials: Unknown email, inactive account or wrong password.
        """
        async with self._uow_factory() as uow:
            identity = await uow.get_repository(IdentityRepository).get_by_email(email)
            if (
                identity is None
                or not identity.is_active
                or not verify_password(password, identity.password_hash)
            ):
                logger.info("auth.login_failed", extra={"extra": {"email_domain": _domain(email)}})
                raise InvalidCredentials()
            await uow.get_repository(IdentityRepository).touch_last_login(
                identity.id, self._clock()
            )
            session = await self._open_session(uow, identity)
            await uow.commit()
        logger.info("auth.login", extra={"extra": {"user_id": identity.id}})
        return session

    async def refresh(self, refresh_token: str) -> SessionTokens:
        """Rotate ``refresh_token`` and issue a new access token.

        Raises:
            InvalidRefreshToken: Unknown, expired or orphaned token.
        """
        async with self._uow_factory() as uow:
            repo: RefreshTokenRepository = uow.get_repository(RefreshTokenRepository)
            stored = await repo.get(refresh_token)
            if stored is None:
                raise InvalidRefreshToken()
            await repo.delete(refresh_token)
            if stored.expires_at <= self._clock():
                await uow.commit()
                raise InvalidRefreshToken()

            identity = await uow.get_repository(IdentityRepository).get_by_id(stored.identity_id)
            if identity is None or not identity.is_active:
                await uow.commit()
                raise InvalidRefreshToken()

            session = await self._open_session(uow, identity)
            await uow.commit()
        return session

    async def logout(self, refresh_token: str | None) -> None:
        if not refresh_token:
            return
        async with self._uow_factory() as uow:
            await uow.get_repository(RefreshTokenRepository).delete(refresh_token)
            await uow.commit()

    async def profile(self, identity_id: str) -> tuple[IdentityRecord, list[MembershipRecord]]:
        async with self._uow_factory() as uow:
            identity = await uow.get_repository(IdentityRepository).get_by_id(identity_id)
            if identity is None:
                raise NotFound("User not found")
            memberships = await uow.get_repository(MembershipRepository).list_for_identity(
                identity_id
            )
        return identity, memberships

    async def change_password(
        self, identity_id: str, current_password: str, new_password: str
    ) -> None:
        """Replace the password of a local account.

        Raises:
            NotFound: Unknown identity.
            InvalidCredentials: ``current_password`` does not match.
        """
        async with self._uow_factory() as uow:
            identities: IdentityRepository = uow.get_repository(IdentityRepository)
            identity = await identities.get_by_id(identity_id)
            if identity is None:
                raise NotFound("User not found")
            if not verify_password(current_password, identity.password_hash):
                raise InvalidCredentials("Current password is incorrect")
            await identities.set_password_hash(identity_id, hash_password(new_password))
            await uow.commit()
        logger.info("auth.password_changed", extra={"extra": {"user_id": identity_id}})

    async def cleanup_expired_refresh_tokens(self) -> int:
        async with self._uow_factory() as uow:
            removed = await uow.get_repository(RefreshTokenRepository).delete_expired(
                self._clock()
            )
            await uow.commit()
        return removed

    async def _open_session(self, uow: UnitOfWork, identity: IdentityRecord) -> SessionTokens:
        memberships = await uow.get_repository(MembershipRepository).list_for_identity(
            identity.id
        )
        access = self._tokens.issue_access_token(
            user_id=identity.id,
            email=identity.email,
            roles=identity.roles,
            display_name=identity.display_name,
            org=org_context_for(memberships),
        )
        refresh = uuid.uuid4().hex
        await uow.get_repository(RefreshTokenRepository).add(
            token=refresh, identity_id=identity.id, expires_at=self._clock() + self._refresh_ttl
        )
        return SessionTokens(
            access_token=access,
            refresh_token=refresh,
            expires_in=self._tokens.access_ttl_seconds,
            identity=identity,
            memberships=tuple(memberships),
        )


def _domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].lower() if "@" in email else ""
