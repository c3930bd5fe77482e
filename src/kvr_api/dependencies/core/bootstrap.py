# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Process lifecycle for the auth core.

:func:`bootstrap` opens the database engine and one shared HTTP client,
routes JWKS fetches for external tokens through that client, and on the way
out waits for queued API key usage writes before releasing anything. Each
teardown step runs even if an earlier one failed.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from kvr_api.config.settings import Settings
from kvr_api.dependencies.core.container import AuthContainer
from kvr_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


@dataclass
class BootstrapState:
    settings: Settings
    http_client: httpx.AsyncClient


@asynccontextmanager
async def bootstrap(container: AuthContainer) -> AsyncGenerator[BootstrapState, None]:
    """Bring up shared infrastructure for ``container`` and tear it down again."""
    settings = container.settings
    logger.info(
        "bootstrap.start",
        extra={
            "extra": {
                "auth_mode": settings.auth_mode.value,
                "tah_active": settings.tah_active,
                "local_active": settings.local_active,
            }
        },
    )

    # Module import kept late so tests can monkeypatch the engine helpers.
    import kvr_api.infrastructure.database.session as db_session

    db_session.init_engine_and_sessionmaker(settings)
    http_client = httpx.AsyncClient(timeout=settings.tah_jwks_timeout_seconds)
    if container.jwks_resolver is not None:
        container.jwks_resolver.use_http_client(http_client)

    try:
        yield BootstrapState(settings=settings, http_client=http_client)
    finally:
        if container.jwks_resolver is not None:
            container.jwks_resolver.use_http_client(None)

        if container.usage_recorder is not None:
            try:
                await container.usage_recorder.drain()
            except Exception:
                logger.exception("bootstrap.usage_drain_failed")

        try:
            await http_client.aclose()
        except Exception:
            logger.exception("bootstrap.http_client_close_failed")

        try:
            await db_session.dispose_engine()
        except Exception:
            logger.exception("bootstrap.db_dispose_failed")

        logger.info("bootstrap.stop")
