# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Auth Models.

Purpose:
    SQLAlchemy models for identities, organizations, memberships, API keys and
    refresh tokens.

Layer:
    infrastructure

Notes:
    Domain contracts are defined in
    ``kvr_api.domain.interfaces.repositories.auth_repositories``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy import UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from kvr_api.infrastructure.database.models.base import (
    Base,
    IdentityMixin,
    ReprMixin,
    TimestampMixin,
    now_utc,
)


class Identity(IdentityMixin, TimestampMixin, ReprMixin, Base):
    """Local identity; shadow identities of SSO users have no password."""

    __tablename__ = "identities"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Organization(IdentityMixin, TimestampMixin, ReprMixin, Base):
    """Tenant. ``org_id`` is the key callers send in ``X-Organization-Id``."""

    __tablename__ = "organizations"

    org_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class OrganizationMembership(IdentityMixin, TimestampMixin, ReprMixin, Base):
    __tablename__ = "organization_memberships"
    __table_args__ = (UniqueConstraint("identity_id", "organization_id"),)

    identity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="MEMBER")
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ApiKey(IdentityMixin, TimestampMixin, ReprMixin, Base):
    """API key. Only the SHA-256 digest of the secret is stored.

    Attributes:
        rate_limit: Allowed requests per window.
        rate_limit_used: Requests counted in the current window.
        rate_limit_reset: End of the current window; NULL until first use.
        workflow_ids: Allowed workflows. Empty list means unrestricted.
    """

    __tablename__ = "api_keys"
    __table_args__ = (Index("ix_api_keys_owner_org", "owner_id", "org_id"),)

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    org_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    key_prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    workflow_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    project_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    rate_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    rate_limit_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rate_limit_reset: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_used_ip: Mapped[str | None] = mapped_column(String(64))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dict(self) -> dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class RefreshToken(ReprMixin, Base):
    __tablename__ = "refresh_tokens"
    __repr_fields__ = ("identity_id", "expires_at")

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    identity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
