# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
API Key Validator

Purpose:
    Decide whether a presented API key may be used for this request.

Check order (first failure wins):
    1. unknown hash              -> InvalidApiKey
    2. inactive                  -> InactiveApiKey
    3. past ``expires_at``       -> ExpiredApiKey
    4. bound to another org      -> OrgMismatch
    5. window elapsed            -> window reset (persisted), then continue
    6. ``used >= rate_limit``    -> RateLimitExceeded (rate_limited, retry_after)
    7. scope not granted         -> MissingScope
    8. workflow not allow-listed -> WorkflowNotAllowed

The check here and the increment in ``UsageRecorder`` are separate steps, so
concurrent requests near the limit may overshoot it by the number of requests
in flight. The increment itself is atomic.

Layer: application/services
"""
from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

from kvr_api.application.uow import UnitOfWorkFactory
from kvr_api.domain.entities.auth_records import ApiKeyRecord
from kvr_api.domain.exceptions.auth import (
    AuthError,
    ExpiredApiKey,
    InactiveApiKey,
    InvalidApiKey,
    MissingScope,
    OrgMismatch,
    RateLimitExceeded,
    WorkflowNotAllowed,
)
from kvr_api.domain.interfaces.repositories.auth_repositories import ApiKeyRepository
from kvr_api.infrastructure.logging.logger import get_json_logger
from kvr_api.infrastructure.observability.metrics import get_api_key_rejections_total
from kvr_api.infrastructure.security.key_hasher import has_recognized_prefix, hash_api_key

__all__ = ["ApiKeyValidation", "ApiKeyValidator", "extract_api_key"]

logger = get_json_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def extract_api_key(
    x_api_key: str | None, authorization: str | None, prefixes: Iterable[str]
) -> str | None:
    """Return the raw API key presented on a request, if any.

    ``X-API-Key`` wins over ``Authorization: Bearer``; a candidate is only
    accepted when it carries a recognized prefix.
    """
    prefixes = tuple(prefixes)
    header = (x_api_key or "").strip()
    if header and has_recognized_prefix(header, prefixes):
        return header
    auth = (authorization or "").strip()
    if auth.lower().startswith("bearer "):
        candidate = auth[7:].strip()
        if candidate and has_recognized_prefix(candidate, prefixes):
            return candidate
    return None


@dataclass(frozen=True, slots=True)
class ApiKeyValidation:
    """Outcome of an API key check.

    Attributes:
        ok: True when the key may be used.
        record: The key, with any window reset applied (None when unknown).
        reason: Failure reason when ``ok`` is False.
    """

    ok: bool
    record: ApiKeyRecord | None = None
    reason: AuthError | None = None

    @property
    def rate_limited(self) -> bool:
        return isinstance(self.reason, RateLimitExceeded)

    @property
    def retry_after_seconds(self) -> int | None:
        return self.reason.retry_after if isinstance(self.reason, RateLimitExceeded) else None

    def raise_for_failure(self) -> ApiKeyRecord:
        """Return the record, or raise the failure reason."""
        if not self.ok or self.record is None:
            raise self.reason or InvalidApiKey()
        return self.record


class ApiKeyValidator:
    """Validate raw API keys against the store.

    Args:
        uow_factory: Builds a Unit of Work per validation.
        window_seconds: Length of the rate-limit window.
        clock: Returns the current aware UTC datetime.
    """

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

    async def validate(
        self,
        raw_key: str,
        *,
        required_scope: str | None = None,
        resource_id: str | None = None,
        requested_org_id: str | None = None,
    ) -> ApiKeyValidation:
        now = self._clock()
        async with self._uow_factory() as uow:
            repo: ApiKeyRepository = uow.get_repository(ApiKeyRepository)
            record = await repo.get_by_hash(hash_api_key(raw_key))

            if record is None:
                return self._reject(InvalidApiKey(), None)
            if not record.is_active:
                return self._reject(InactiveApiKey(), record)
            if record.expires_at is not None and record.expires_at < now:
                return self._reject(ExpiredApiKey(), record)
            if requested_org_id and record.org_id and record.org_id != requested_org_id:
                return self._reject(OrgMismatch(), record)

            if record.rate_limit_reset is not None and record.rate_limit_reset < now:
                reset_at = now + self._window
                await repo.reset_window(record.id, reset_at=reset_at)
                await uow.commit()
                record = replace(record, rate_limit_used=0, rate_limit_reset=reset_at)

        if record.rate_limit_used >= record.rate_limit:
            if record.rate_limit_reset is not None:
                remaining = (record.rate_limit_reset - now).total_seconds()
                retry_after = max(1, math.ceil(remaining))
            else:
                retry_after = int(self._window.total_seconds())
            return self._reject(RateLimitExceeded(retry_after=retry_after), record)

        if required_scope and required_scope not in record.scopes:
            return self._reject(
                MissingScope(
                    details={"required": required_scope, "available": list(record.scopes)}
                ),
                record,
            )
        if resource_id and record.workflow_ids and resource_id not in record.workflow_ids:
            return self._reject(WorkflowNotAllowed(details={"workflowId": resource_id}), record)

        return ApiKeyValidation(ok=True, record=record)

    def _reject(self, reason: AuthError, record: ApiKeyRecord | None) -> ApiKeyValidation:
        get_api_key_rejections_total().labels(reason=reason.code).inc()
        logger.info(
            "auth.api_key_rejected",
            extra={
                "extra": {
                    "reason": reason.code,
                    "key_prefix": record.key_prefix if record else None,
                }
            },
        )
        return ApiKeyValidation(ok=False, record=record, reason=reason)
