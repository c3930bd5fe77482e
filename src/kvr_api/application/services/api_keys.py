# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
API key management.

Keys are tenant-scoped: a caller with an organization sees the
organization's keys; a caller without one sees only keys they own. The raw
secret is only ever returned by ``create_key`` and ``regenerate_key``.

Layer: application/services
"""
from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from kvr_api.application.uow import UnitOfWork, UnitOfWorkFactory
from kvr_api.domain.entities.auth_records import ApiKeyRecord
from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.exceptions.base import DomainError, NotFound
from kvr_api.domain.interfaces.repositories.auth_repositories import (
    ApiKeyRepository,
    IdentityRepository,
)
from kvr_api.infrastructure.logging.logger import get_json_logger
from kvr_api.infrastructure.security.key_hasher import generate_api_key, hash_api_key, key_prefix

logger = get_json_logger(__name__)

AVAILABLE_SCOPES: dict[str, str] = {
    "resources:read": "Read resources and their configuration",
    "resources:write": "Create and update resources",
    "resources:test": "Run connectivity tests against resources",
    "resources:promote": "Promote resources between environments",
    "resources:approve": "Approve pending resource promotions",
    "apikeys:read": "List API keys",
    "apikeys:write": "Create and modify API keys",
}

DEFAULT_SCOPES: tuple[str, ...] = ("resources:read",)


class UnknownScope(DomainError):
    code = "INVALID_SCOPE"
    http_status = 400
    default_message = "Unknown scope"


class LocalIdentityRequired(DomainError):
    """The caller has no stored identity to own or scope API keys by.

    Happens for SSO users whose shadow identity could not be provisioned and
    for the development bypass principal.
    """

    code = "LOCAL_IDENTITY_REQUIRED"
    http_status = 403
    default_message = "API keys require a local identity"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class IssuedKey:
    record: ApiKeyRecord
    raw_key: str


class ApiKeyService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        default_rate_limit: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._default_rate_limit = default_rate_limit
        self._clock = clock

    async def list_keys(
        self, principal: Principal, *, include_inactive: bool
    ) -> list[ApiKeyRecord]:
        async with self._uow_factory() as uow:
            await _require_identity(uow, principal)
            return await uow.get_repository(ApiKeyRepository).list_for_tenant(
                org_id=principal.org_id,
                owner_id=principal.user_id,
                include_inactive=include_inactive,
            )

    async def get_key(self, principal: Principal, key_id: str) -> ApiKeyRecord:
        async with self._uow_factory() as uow:
            await _require_identity(uow, principal)
            return await self._require(uow.get_repository(ApiKeyRepository), principal, key_id)

    async def create_key(
        self,
        principal: Principal,
        *,
        name: str,
        description: str | None = None,
        scopes: Sequence[str] | None = None,
        workflow_ids: Sequence[str] = (),
        project_ids: Sequence[str] = (),
        rate_limit: int | None = None,
        expires_at: datetime | None = None,
    ) -> IssuedKey:
        resolved_scopes = _check_scopes(scopes if scopes else DEFAULT_SCOPES)
        raw = generate_api_key()
        async with self._uow_factory() as uow:
            await _require_identity(uow, principal)
            record = await uow.get_repository(ApiKeyRepository).create(
                owner_id=principal.user_id,
                org_id=principal.org_id,
                name=name,
                description=description,
                key_hash=hash_api_key(raw),
                key_prefix=key_prefix(raw),
                scopes=resolved_scopes,
                workflow_ids=list(workflow_ids),
                project_ids=list(project_ids),
                rate_limit=rate_limit or self._default_rate_limit,
                expires_at=expires_at,
            )
            await uow.commit()
        logger.info(
            "api_key.created",
            extra={"extra": {"key_id": record.id, "owner_id": principal.user_id}},
        )
        return IssuedKey(record=record, raw_key=raw)

    async def update_key(
        self, principal: Principal, key_id: str, changes: dict[str, Any]
    ) -> ApiKeyRecord:
        if "scopes" in changes and changes["scopes"] is not None:
            changes["scopes"] = _check_scopes(changes["scopes"])
        changes = {k: v for k, v in changes.items() if v is not None or k == "expires_at"}
        async with self._uow_factory() as uow:
            await _require_identity(uow, principal)
            repo: ApiKeyRepository = uow.get_repository(ApiKeyRepository)
            await self._require(repo, principal, key_id)
            updated = await repo.update(key_id, **changes) if changes else None
            await uow.commit()
            if updated is None:
                updated = await self._require(repo, principal, key_id)
        return updated

    async def delete_key(self, principal: Principal, key_id: str) -> None:
        async with self._uow_factory() as uow:
            await _require_identity(uow, principal)
            repo: ApiKeyRepository = uow.get_repository(ApiKeyRepository)
            await self._require(repo, principal, key_id)
            await repo.delete(key_id)
            await uow.commit()
        logger.info("api_key.deleted", extra={"extra": {"key_id": key_id}})

    async def regenerate_key(self, principal: Principal, key_id: str) -> IssuedKey:
        """Replace the secret; usage counters and the window start over."""
        raw = generate_api_key()
        async with self._uow_factory() as uow:
            await _require_identity(uow, principal)
            repo: ApiKeyRepository = uow.get_repository(ApiKeyRepository)
            await self._require(repo, principal, key_id)
            await repo.rotate_secret(key_id, key_hash=hash_api_key(raw), key_prefix=key_prefix(raw))
            await uow.commit()
            record = await self._require(repo, principal, key_id)
        logger.info("api_key.regenerated", extra={"extra": {"key_id": key_id}})
        return IssuedKey(record=record, raw_key=raw)

    async def stats(self, principal: Principal, key_id: str) -> dict[str, Any]:
        record = await self.get_key(principal, key_id)
        now = self._clock()
        reset_in: int | None = None
        if record.rate_limit_reset is not None and record.rate_limit_reset > now:
            reset_in = math.ceil((record.rate_limit_reset - now).total_seconds())
        return {
            "usageCount": record.usage_count,
            "rateLimit": record.rate_limit,
            "rateLimitUsed": record.rate_limit_used,
            "rateLimitRemaining": max(0, record.rate_limit - record.rate_limit_used),
            "rateLimitReset": record.rate_limit_reset,
            "rateLimitResetIn": reset_in,
            "lastUsedAt": record.last_used_at,
            "lastUsedIp": record.last_used_ip,
            "createdAt": record.created_at,
        }

    @staticmethod
    async def _require(repo: ApiKeyRepository, principal: Principal, key_id: str) -> ApiKeyRecord:
        record = await repo.get_for_tenant(
            key_id, org_id=principal.org_id, owner_id=principal.user_id
        )
        if record is None:
            raise NotFound("API key not found")
        return record


async def _require_identity(uow: UnitOfWork, principal: Principal) -> None:
    if await uow.get_repository(IdentityRepository).get_by_id(principal.user_id) is None:
        raise LocalIdentityRequired(details={"authSource": principal.auth_source.value})


def _check_scopes(scopes: Sequence[str]) -> list[str]:
    unknown = [s for s in scopes if s not in AVAILABLE_SCOPES]
    if unknown:
        raise UnknownScope(details={"invalid": unknown, "allowed": sorted(AVAILABLE_SCOPES)})
    return list(dict.fromkeys(scopes))
