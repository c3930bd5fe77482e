# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Shadow Identity Resolver

Purpose:
    Give every externally authenticated subject a local identity so that
    locally owned data (API keys, audit fields) can reference it.

Behavior:
    * Lookup by external subject id, falling back to email (links a
      pre-existing local account to the SSO subject).
    * With sync-on-login, the link, display name and last-login instant are
      refreshed, plus the membership role when the organization is known.
      Local roles are never overwritten by SSO claims.
    * Unknown subjects get a new identity with the configured default role and
      a default membership in their organization (when it exists locally).
    * Persistence failures never block authentication: they are logged and
      the external id is returned instead.

Layer: application/services
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from kvr_api.application.uow import UnitOfWork, UnitOfWorkFactory
from kvr_api.config.features.auth import ShadowUserSettings
from kvr_api.domain.entities.auth_records import IdentityRecord, OrganizationRecord
from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.enums.auth import OrgRole
from kvr_api.domain.interfaces.repositories.auth_repositories import (
    IdentityRepository,
    MembershipRepository,
    OrganizationRepository,
)
from kvr_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class ShadowIdentityResolver:
    def __init__(
        self,
        settings: ShadowUserSettings,
        uow_factory: UnitOfWorkFactory,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._uow_factory = uow_factory
        self._clock = clock

    async def ensure_local_identity(self, principal: Principal) -> str:
        """Return the local identity id for an external principal.

        Idempotent: repeated calls for the same subject return the same id and
        never create duplicates.
        """
        external_id = principal.external_id or principal.user_id
        if not self._settings.create:
            return external_id

        try:
            async with self._uow_factory() as uow:
                identity_id = await self._resolve(uow, principal, external_id)
                await uow.commit()
                return identity_id
        except Exception:
            logger.warning(
                "shadow_identity.persistence_failed",
                exc_info=True,
                extra={"extra": {"external_id": external_id}},
            )
            return external_id

    async def _resolve(self, uow: UnitOfWork, principal: Principal, external_id: str) -> str:
        identities: IdentityRepository = uow.get_repository(IdentityRepository)
        orgs: OrganizationRepository = uow.get_repository(OrganizationRepository)

        org = await orgs.get_by_org_id(principal.org_id) if principal.org_id else None
        existing = await identities.find_by_external_id_or_email(external_id, principal.email)
        now = self._clock()

        if existing is not None:
            if self._settings.sync_on_login:
                await identities.update_sso_link(
                    existing.id,
                    external_id=external_id,
                    display_name=principal.display_name,
                    last_login_at=now,
                )
                if org is not None:
                    await self._sync_membership(uow, existing, org, principal.org_role)
            return existing.id

        if not principal.email:
            logger.info(
                "shadow_identity.skipped_no_email", extra={"extra": {"external_id": external_id}}
            )
            return external_id

        created = await identities.create(
            email=principal.email,
            roles=[self._settings.default_role],
            external_id=external_id,
            display_name=principal.display_name,
            last_login_at=now,
        )
        if org is not None:
            memberships: MembershipRepository = uow.get_repository(MembershipRepository)
            await memberships.add(
                identity_id=created.id,
                organization_id=org.id,
                role=principal.org_role or OrgRole.MEMBER.value,
                is_default=True,
            )
        logger.info(
            "shadow_identity.created",
            extra={"extra": {"identity_id": created.id, "org_id": principal.org_id}},
        )
        return created.id

    async def _sync_membership(
        self,
        uow: UnitOfWork,
        identity: IdentityRecord,
        org: OrganizationRecord,
        org_role: str | None,
    ) -> None:
        memberships: MembershipRepository = uow.get_repository(MembershipRepository)
        role = org_role or OrgRole.MEMBER.value
        current = await memberships.get(identity.id, org.id)
        if current is None:
            has_any = bool(await memberships.list_for_identity(identity.id))
            await memberships.add(
                identity_id=identity.id,
                organization_id=org.id,
                role=role,
                is_default=not has_any,
            )
        elif current.role != role:
            await memberships.set_role(identity.id, org.id, role)
