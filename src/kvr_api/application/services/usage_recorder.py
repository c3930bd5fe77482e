# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
API key usage recording.

Usage is recorded after a key is accepted and never delays the response:
``schedule`` starts a detached task that is not tied to the request, so a
client disconnect does not cancel it. Failures are logged and dropped.
``drain`` awaits outstanding tasks (shutdown and tests).

Layer: application/services
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from kvr_api.application.uow import UnitOfWorkFactory
from kvr_api.domain.interfaces.repositories.auth_repositories import ApiKeyRepository
from kvr_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class UsageRecorder:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        window_seconds: int = 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._window = timedelta(seconds=window_seconds)
        self._clock = clock
        self._pending: set[asyncio.Task[None]] = set()

    async def record_usage(self, key_id: str, client_ip: str | None) -> None:
        """Atomically count one use of ``key_id`` and open a window if none is open."""
        now = self._clock()
        async with self._uow_factory() as uow:
            repo: ApiKeyRepository = uow.get_repository(ApiKeyRepository)
            await repo.increment_usage(
                key_id, client_ip=client_ip, now=now, window_end=now + self._window
            )
            await uow.commit()

    def schedule(self, key_id: str, client_ip: str | None) -> asyncio.Task[None]:
        task = asyncio.create_task(self._record_quietly(key_id, client_ip))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _record_quietly(self, key_id: str, client_ip: str | None) -> None:
        try:
            await self.record_usage(key_id, client_ip)
        except Exception:
            logger.warning(
                "api_key.usage_update_failed",
                exc_info=True,
                extra={"extra": {"key_id": key_id}},
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for all scheduled usage updates to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
