# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Domain-facing interfaces for auth persistence.

This module defines the capabilities the authentication core needs from its
store. Implementations never commit; the Unit of Work owns transactions.

Notes:
    * This interface is persistence-agnostic; implementations may use
      SQLAlchemy, another ORM, or in-memory fakes in tests.
    * The concrete adapters live in ``adapters/repositories/``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from kvr_api.domain.entities.auth_records import (
    ApiKeyRecord,
    IdentityRecord,
    MembershipRecord,
    OrganizationRecord,
    RefreshTokenRecord,
)


class IdentityRepository(Protocol):
    """Local identities, including shadow identities of external users."""

    async def get_by_id(self, identity_id: str) -> IdentityRecord | None: ...

    async def get_by_email(self, email: str) -> IdentityRecord | None: ...

    async def find_by_external_id_or_email(
        self, external_id: str, email: str | None
    ) -> IdentityRecord | None:
        """Return the identity linked to ``external_id`` or, failing that, ``email``."""
        ...

    async def create(
        self,
        *,
        email: str,
        roles: Sequence[str],
        password_hash: str | None = None,
        external_id: str | None = None,
        display_name: str | None = None,
        last_login_at: datetime | None = None,
    ) -> IdentityRecord: ...

    async def update_sso_link(
        self,
        identity_id: str,
        *,
        external_id: str,
        display_name: str | None,
        last_login_at: datetime,
    ) -> None: ...

    async def touch_last_login(self, identity_id: str, at: datetime) -> None: ...

    async def set_password_hash(self, identity_id: str, password_hash: str) -> None: ...


class OrganizationRepository(Protocol):
    async def get_by_org_id(self, org_id: str) -> OrganizationRecord | None: ...

    async def create(self, *, org_id: str, name: str) -> OrganizationRecord: ...


class MembershipRepository(Protocol):
    """Identity ↔ organization links.

    Invariant: at most one membership per identity has ``is_default=True``;
    ``add`` with ``is_default=True`` clears the flag elsewhere.
    """

    async def list_for_identity(self, identity_id: str) -> list[MembershipRecord]:
        """Return memberships ordered default-first, then oldest-first."""
        ...

    async def get(self, identity_id: str, organization_id: str) -> MembershipRecord | None: ...

    async def add(
        self,
        *,
        identity_id: str,
        organization_id: str,
        role: str,
        is_default: bool,
    ) -> MembershipRecord: ...

    async def set_role(self, identity_id: str, organization_id: str, role: str) -> None: ...


class ApiKeyRepository(Protocol):
    """API key storage, including the atomic usage increment."""

    async def get_by_hash(self, key_hash: str) -> ApiKeyRecord | None: ...

    async def get_for_tenant(
        self, key_id: str, *, org_id: str | None, owner_id: str
    ) -> ApiKeyRecord | None:
        """Return the key when it belongs to ``org_id`` (or to ``owner_id`` without org)."""
        ...

    async def list_for_tenant(
        self, *, org_id: str | None, owner_id: str, include_inactive: bool
    ) -> list[ApiKeyRecord]: ...

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
    ) -> ApiKeyRecord: ...

    async def update(self, key_id: str, **fields: Any) -> ApiKeyRecord | None: ...

    async def delete(self, key_id: str) -> None: ...

    async def rotate_secret(self, key_id: str, *, key_hash: str, key_prefix: str) -> None:
        """Replace the secret and reset usage counters and the window."""
        ...

    async def reset_window(self, key_id: str, *, reset_at: datetime) -> None:
        """Zero ``rate_limit_used`` and start a new window ending at ``reset_at``."""
        ...

    async def increment_usage(
        self, key_id: str, *, client_ip: str | None, now: datetime, window_end: datetime
    ) -> None:
        """Atomically bump usage counters and open a window if none is open."""
        ...


class RefreshTokenRepository(Protocol):
    async def add(self, *, token: str, identity_id: str, expires_at: datetime) -> None: ...

    async def get(self, token: str) -> RefreshTokenRecord | None: ...

    async def delete(self, token: str) -> None: ...

    async def delete_expired(self, now: datetime) -> int: ...
