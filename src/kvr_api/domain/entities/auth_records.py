# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Auth Records (Domain Layer).

Purpose:
    Immutable snapshots of persisted auth state (identities, organizations,
    memberships, API keys, refresh tokens) as returned by repositories.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class IdentityRecord:
    id: str
    email: str
    roles: tuple[str, ...]
    display_name: str | None = None
    external_id: str | None = None
    password_hash: str | None = None
    is_active: bool = True
    last_login_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class OrganizationRecord:
    id: str
    org_id: str
    name: str


@dataclass(frozen=True, slots=True)
class MembershipRecord:
    """One identity's role inside one organization."""

    identity_id: str
    organization_id: str
    org_id: str
    org_name: str
    role: str
    is_default: bool
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ApiKeyRecord:
    """Persisted API key.

    The raw secret is never stored; ``key_hash`` is its SHA-256 hex digest.
    ``rate_limit_reset`` is ``None`` until the first use opens a window.
    """

    id: str
    owner_id: str
    name: str
    key_hash: str
    key_prefix: str
    scopes: tuple[str, ...]
    rate_limit: int
    rate_limit_used: int = 0
    rate_limit_reset: datetime | None = None
    org_id: str | None = None
    description: str | None = None
    workflow_ids: tuple[str, ...] = ()
    project_ids: tuple[str, ...] = ()
    usage_count: int = 0
    last_used_at: datetime | None = None
    last_used_ip: str | None = None
    expires_at: datetime | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class RefreshTokenRecord:
    token: str
    identity_id: str
    expires_at: datetime
