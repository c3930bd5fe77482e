# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
BaseRepository: Rule-enforcing repository foundation for KVR.

Purpose:
    Shared mechanics for all repositories:
      * Safe fetch helpers (optional, all).
      * UTC timestamp helpers; drivers without timezone support (SQLite)
        return naive datetimes, which are normalized to UTC here.
      * Tolerant UUID parsing for identifiers that arrive as strings.

Layer: adapters / repositories

Notes:
    * No business logic, no domain decisions.
    * Repositories never commit; the Unit of Work owns transactions.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

TModel = TypeVar("TModel")


class BaseRepository(Generic[TModel]):  # noqa: UP046
    """Abstract base class for all repositories."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: Async SQLAlchemy session bound to the target database.
        """
        self._session: AsyncSession = session

    @staticmethod
    def utc_now() -> datetime:
        """Return current UTC time with timezone info."""
        return datetime.now(UTC)

    @staticmethod
    def as_utc(value: datetime | None) -> datetime | None:
        """Attach UTC to naive datetimes read back from the store."""
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=UTC)

    @staticmethod
    def parse_uuid(value: str | uuid.UUID) -> uuid.UUID | None:
        """Return ``value`` as a UUID, or None when it is not one."""
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value))
        except ValueError:
            return None

    async def fetch_optional(self, stmt: Select[Any]) -> TModel | None:
        """Execute a statement and return zero or one row."""
        res = await self._session.execute(stmt.execution_options(populate_existing=True))
        return res.scalars().first()

    async def fetch_all(self, stmt: Select[Any]) -> list[TModel]:
        """Execute a statement and return all rows as a list."""
        res = await self._session.execute(stmt.execution_options(populate_existing=True))
        return list(res.scalars().all())
