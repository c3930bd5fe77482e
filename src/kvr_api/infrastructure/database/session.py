# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Process-wide async engine and session factory.

``bootstrap()`` calls :func:`init_engine_and_sessionmaker` on startup and
:func:`dispose_engine` on shutdown. Callers that run without the lifespan
(ASGI test transports, the health probe) get a lazily built engine from
``get_settings()``.

PostgreSQL (asyncpg) is the production target; SQLite (aiosqlite) backs
tests and single-node development.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from kvr_api.config.settings import Settings, get_settings

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def engine_options(database_url: str) -> dict[str, Any]:
    """Engine keyword arguments suited to the backend of ``database_url``."""
    if make_url(database_url).get_backend_name() == "sqlite":
        # Usage writes run in background tasks; let them wait on the file lock.
        return {"connect_args": {"timeout": 15}}
    return {"pool_pre_ping": True}


def init_engine_and_sessionmaker(settings: Settings) -> None:
    """Create the engine and session factory once; later calls are no-ops.

    Raises:
        ValueError: If ``settings.database_url`` is empty.
    """
    global _engine, _sessionmaker

    if not settings.database_url:
        raise ValueError("database_url must be configured")
    if _engine is not None:
        return

    _engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))
    _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False, class_=AsyncSession)


async def dispose_engine() -> None:
    global _engine, _sessionmaker
    engine, _engine, _sessionmaker = _engine, None, None
    if engine is not None:
        await engine.dispose()


def get_engine() -> AsyncEngine:
    if _engine is None:
        init_engine_and_sessionmaker(get_settings())
    assert _engine is not None
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        init_engine_and_sessionmaker(get_settings())
    assert _sessionmaker is not None
    return _sessionmaker
