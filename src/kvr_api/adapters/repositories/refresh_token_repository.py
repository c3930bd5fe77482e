# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Refresh token repository (SQLAlchemy).

Layer: adapters / repositories
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import delete, select

from kvr_api.adapters.repositories.base_repository import BaseRepository
from kvr_api.domain.entities.auth_records import RefreshTokenRecord
from kvr_api.infrastructure.database.models.auth import RefreshToken


class SqlAlchemyRefreshTokenRepository(BaseRepository[RefreshToken]):
    async def add(self, *, token: str, identity_id: str, expires_at: datetime) -> None:
        self._session.add(
            RefreshToken(
                token=token, identity_id=self.parse_uuid(identity_id), expires_at=expires_at
            )
        )
        await self._session.flush()

    async def get(self, token: str) -> RefreshTokenRecord | None:
        row = await self.fetch_optional(select(RefreshToken).where(RefreshToken.token == token))
        if row is None:
            return None
        expires_at = row.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return RefreshTokenRecord(
            token=row.token, identity_id=str(row.identity_id), expires_at=expires_at
        )

    async def delete(self, token: str) -> None:
        await self._session.execute(delete(RefreshToken).where(RefreshToken.token == token))

    async def delete_expired(self, now: datetime) -> int:
        res = await self._session.execute(
            delete(RefreshToken).where(RefreshToken.expires_at < now)
        )
        return int(getattr(res, "rowcount", 0) or 0)
