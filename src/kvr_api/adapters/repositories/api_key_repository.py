# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
API key repository (SQLAlchemy).

Purpose:
    Persistence for API keys, including the usage increment which is a single
    ``UPDATE ... SET col = col + 1`` so concurrent requests never lose counts.

Tenant isolation:
    Keys are scoped to an organization when the caller has one; otherwise to
    the owning identity.

Layer: adapters / repositories
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update

from kvr_api.adapters.repositories.base_repository import BaseRepository
from kvr_api.domain.entities.auth_records import ApiKeyRecord
from kvr_api.infrastructure.database.models.auth import ApiKey

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "scopes",
        "workflow_ids",
        "project_ids",
        "rate_limit",
        "expires_at",
        "is_active",
    }
)


class SqlAlchemyApiKeyRepository(BaseRepository[ApiKey]):
    """API key persistence; never commits."""

    def _to_record(self, row: ApiKey) -> ApiKeyRecord:
        return ApiKeyRecord(
            id=str(row.id),
            owner_id=str(row.owner_id),
            org_id=row.org_id,
            name=row.name,
            description=row.description,
            key_hash=row.key_hash,
            key_prefix=row.key_prefix,
            scopes=tuple(row.scopes or ()),
            workflow_ids=tuple(row.workflow_ids or ()),
            project_ids=tuple(row.project_ids or ()),
            rate_limit=row.rate_limit,
            rate_limit_used=row.rate_limit_used,
            rate_limit_reset=self.as_utc(row.rate_limit_reset),
            usage_count=row.usage_count,
            last_used_at=self.as_utc(row.last_used_at),
            last_used_ip=row.last_used_ip,
            expires_at=self.as_utc(row.expires_at),
            is_active=row.is_active,
            created_at=self.as_utc(row.created_at),
            updated_at=self.as_utc(row.updated_at),
        )

    def _tenant_filter(self, *, org_id: str | None, owner_id: str) -> Any:
        if org_id:
            return ApiKey.org_id == org_id
        return ApiKey.owner_id == self.parse_uuid(owner_id)

    async def get_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        row = await self.fetch_optional(select(ApiKey).where(ApiKey.key_hash == key_hash))
        return self._to_record(row) if row else None

    async def get_for_tenant(
        self, key_id: str, *, org_id: str | None, owner_id: str
    ) -> ApiKeyRecord | None:
        kid = self.parse_uuid(key_id)
        if kid is None:
            return None
        row = await self.fetch_optional(
            select(ApiKey).where(
                ApiKey.id == kid, self._tenant_filter(org_id=org_id, owner_id=owner_id)
            )
        )
        return self._to_record(row) if row else None

    async def list_for_tenant(
        self, *, org_id: str | None, owner_id: str, include_inactive: bool
    ) -> list[ApiKeyRecord]:
        stmt = select(ApiKey).where(self._tenant_filter(org_id=org_id, owner_id=owner_id))
        if not include_inactive:
            stmt = stmt.where(ApiKey.is_active.is_(True))
        stmt = stmt.order_by(ApiKey.created_at.desc(), ApiKey.id.asc())
        return [self._to_record(r) for r in await self.fetch_all(stmt)]

    async def create(
        self,
        *,
        owner_id: str,
        org_id: str | None,
        name: str,
        description: str | None,
        key_hash: str,
        key_prefix: str,
        scopes: Sequence[str],
        workflow_ids: Sequence[str],
        project_ids: Sequence[str],
        rate_limit: int,
        expires_at: datetime | None,
    ) -> ApiKeyRecord:
        row = ApiKey(
            owner_id=self.parse_uuid(owner_id),
            org_id=org_id,
            name=name,
            description=description,
            key_hash=key_hash,
            key_prefix=key_prefix,
            scopes=list(scopes),
            workflow_ids=list(workflow_ids),
            project_ids=list(project_ids),
            rate_limit=rate_limit,
            rate_limit_used=0,
            usage_count=0,
            expires_at=expires_at,
            is_active=True,
        )
        self._session.add(row)
        await self._session.flush()
        return self._to_record(row)

    async def update(self, key_id: str, **fields: Any) -> ApiKeyRecord | None:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        row = await self._session.get(ApiKey, self.parse_uuid(key_id))
        if row is None:
            return None
        for name, value in fields.items():
            setattr(row, name, list(value) if isinstance(value, tuple) else value)
        await self._session.flush()
        return self._to_record(row)

    async def delete(self, key_id: str) -> None:
        await self._session.execute(delete(ApiKey).where(ApiKey.id == self.parse_uuid(key_id)))

    async def rotate_secret(self, key_id: str, *, key_hash: str, key_prefix: str) -> None:
        await self._session.execute(
            update(ApiKey)
            .where(ApiKey.id == self.parse_uuid(key_id))
            .values(
                key_hash=key_hash,
                key_prefix=key_prefix,
                usage_count=0,
                rate_limit_used=0,
                rate_limit_reset=None,
                last_used_at=None,
                last_used_ip=None,
                updated_at=self.utc_now(),
            )
            .execution_options(synchronize_session=False)
        )

    async def reset_window(self, key_id: str, *, reset_at: datetime) -> None:
        await self._session.execute(
            update(ApiKey)
            .where(ApiKey.id == self.parse_uuid(key_id))
            .values(rate_limit_used=0, rate_limit_reset=reset_at)
            .execution_options(synchronize_session=False)
        )

    async def increment_usage(
        self, key_id: str, *, client_ip: str | None, now: datetime, window_end: datetime
    ) -> None:
        await self._session.execute(
            update(ApiKey)
            .where(ApiKey.id == self.parse_uuid(key_id))
            .values(
                usage_count=ApiKey.usage_count + 1,
                rate_limit_used=ApiKey.rate_limit_used + 1,
                last_used_at=now,
                last_used_ip=client_ip,
                rate_limit_reset=func.coalesce(ApiKey.rate_limit_reset, window_end),
            )
            .execution_options(synchronize_session=False)
        )
