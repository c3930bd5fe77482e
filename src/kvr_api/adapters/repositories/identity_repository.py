# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
SQLAlchemy repositories for identities, organizations and memberships.

Layer: adapters / repositories
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import or_, select, update

from kvr_api.adapters.repositories.base_repository import BaseRepository
from kvr_api.domain.entities.auth_records import (
    IdentityRecord,
    MembershipRecord,
    OrganizationRecord,
)
from kvr_api.infrastructure.database.models.auth import (
    Identity,
    Organization,
    OrganizationMembership,
)


class SqlAlchemyIdentityRepository(BaseRepository[Identity]):
    """Identity persistence. Emails are stored and matched lower-cased."""

    def _to_record(self, row: Identity) -> IdentityRecord:
        return IdentityRecord(
            id=str(row.id),
            email=row.email,
            roles=tuple(row.roles or ()),
            display_name=row.display_name,
            external_id=row.external_id,
            password_hash=row.password_hash,
            is_active=row.is_active,
            last_login_at=self.as_utc(row.last_login_at),
            created_at=self.as_utc(row.created_at),
        )

    async def get_by_id(self, identity_id: str) -> IdentityRecord | None:
        uid = self.parse_uuid(identity_id)
        if uid is None:
            return None
        row = await self.fetch_optional(select(Identity).where(Identity.id == uid))
        return self._to_record(row) if row else None

    async def get_by_email(self, email: str) -> IdentityRecord | None:
        row = await self.fetch_optional(select(Identity).where(Identity.email == email.lower()))
        return self._to_record(row) if row else None

    async def find_by_external_id_or_email(
        self, external_id: str, email: str | None
    ) -> IdentityRecord | None:
        clauses = [Identity.external_id == external_id]
        if email:
            clauses.append(Identity.email == email.lower())
        rows = await self.fetch_all(select(Identity).where(or_(*clauses)))
        if not rows:
            return None
        # A row already linked to the subject wins over an email match.
        linked = next((r for r in rows if r.external_id == external_id), rows[0])
        return self._to_record(linked)

    async def create(
        self,
        *,
        email: str,
        roles: Sequence[str],
        password_hash: str | None = None,
        external_id: str | None = None,
        display_name: str | None = None,
        last_login_at: datetime | None = None,
    ) -> IdentityRecord:
        row = Identity(
            email=email.lower(),
            roles=list(roles),
            password_hash=password_hash,
            external_id=external_id,
            display_name=display_name,
            last_login_at=last_login_at,
        )
        self._session.add(row)
        await self._session.flush()
        return self._to_record(row)

    async def update_sso_link(
        self,
        identity_id: str,
        *,
        external_id: str,
        display_name: str | None,
        last_login_at: datetime,
    ) -> None:
        values: dict[str, object] = {"external_id": external_id, "last_login_at": last_login_at}
        if display_name:
            values["display_name"] = display_name
        await self._session.execute(
            update(Identity).where(Identity.id == self.parse_uuid(identity_id)).values(**values)
        )

    async def touch_last_login(self, identity_id: str, at: datetime) -> None:
        await self._session.execute(
            update(Identity)
            .where(Identity.id == self.parse_uuid(identity_id))
            .values(last_login_at=at)
        )

    async def set_password_hash(self, identity_id: str, password_hash: str) -> None:
        await self._session.execute(
            update(Identity)
            .where(Identity.id == self.parse_uuid(identity_id))
            .values(password_hash=password_hash)
        )


class SqlAlchemyOrganizationRepository(BaseRepository[Organization]):
    async def get_by_org_id(self, org_id: str) -> OrganizationRecord | None:
        row = await self.fetch_optional(select(Organization).where(Organization.org_id == org_id))
        if row is None:
            return None
        return OrganizationRecord(id=str(row.id), org_id=row.org_id, name=row.name)

    async def create(self, *, org_id: str, name: str) -> OrganizationRecord:
        row = Organization(org_id=org_id, name=name)
        self._session.add(row)
        await self._session.flush()
        return OrganizationRecord(id=str(row.id), org_id=row.org_id, name=row.name)


class SqlAlchemyMembershipRepository(BaseRepository[OrganizationMembership]):
    """Memberships; keeps at most one default per identity."""

    async def list_for_identity(self, identity_id: str) -> list[MembershipRecord]:
        uid = self.parse_uuid(identity_id)
        if uid is None:
            return []
        stmt = (
            select(OrganizationMembership, Organization)
            .join(Organization, Organization.id == OrganizationMembership.organization_id)
            .where(OrganizationMembership.identity_id == uid)
            .order_by(
                OrganizationMembership.is_default.desc(),
                OrganizationMembership.created_at.asc(),
            )
            .execution_options(populate_existing=True)
        )
        res = await self._session.execute(stmt)
        return [
            MembershipRecord(
                identity_id=str(m.identity_id),
                organization_id=str(m.organization_id),
                org_id=o.org_id,
                org_name=o.name,
                role=m.role,
                is_default=m.is_default,
                created_at=self.as_utc(m.created_at),
            )
            for m, o in res.all()
        ]

    async def get(self, identity_id: str, organization_id: str) -> MembershipRecord | None:
        for membership in await self.list_for_identity(identity_id):
            if membership.organization_id == organization_id:
                return membership
        return None

    async def add(
        self,
        *,
        identity_id: str,
        organization_id: str,
        role: str,
        is_default: bool,
    ) -> MembershipRecord:
        uid = self.parse_uuid(identity_id)
        oid = self.parse_uuid(organization_id)
        if is_default:
            await self._session.execute(
                update(OrganizationMembership)
                .where(OrganizationMembership.identity_id == uid)
                .values(is_default=False)
            )
        row = OrganizationMembership(
            identity_id=uid, organization_id=oid, role=role, is_default=is_default
        )
        self._session.add(row)
        await self._session.flush()
        org = await self._session.get(Organization, oid)
        return MembershipRecord(
            identity_id=str(uid),
            organization_id=str(oid),
            org_id=org.org_id if org else "",
            org_name=org.name if org else "",
            role=role,
            is_default=is_default,
            created_at=self.as_utc(row.created_at),
        )

    async def set_role(self, identity_id: str, organization_id: str, role: str) -> None:
        await self._session.execute(
            update(OrganizationMembership)
            .where(
                OrganizationMembership.identity_id == self.parse_uuid(identity_id),
                OrganizationMembership.organization_id == self.parse_uuid(organization_id),
            )
            .values(role=role)
        )
