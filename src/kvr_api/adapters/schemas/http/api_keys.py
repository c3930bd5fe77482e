# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""API key management HTTP schemas.

The key hash is never serialized. The raw secret only appears in
``ApiKeyCreatedView``, returned once on creation and regeneration.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from kvr_api.adapters.schemas.http.base import BaseHTTPSchema
from kvr_api.domain.entities.auth_records import ApiKeyRecord

__all__ = [
    "ApiKeyCreateRequest",
    "ApiKeyCreatedView",
    "ApiKeyStatsView",
    "ApiKeyUpdateRequest",
    "ApiKeyView",
    "ScopeView",
]


class ApiKeyCreateRequest(BaseHTTPSchema):
    name: str = Field(..., min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    scopes: list[str] | None = None
    workflow_ids: list[str] = Field(default_factory=list)
    project_ids: list[str] = Field(default_factory=list)
    rate_limit: int | None = Field(default=None, ge=1)
    expires_at: datetime | None = None


class ApiKeyUpdateRequest(BaseHTTPSchema):
    """Partial update; only fields present in the body are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    scopes: list[str] | None = None
    workflow_ids: list[str] | None = None
    project_ids: list[str] | None = None
    rate_limit: int | None = Field(default=None, ge=1)
    expires_at: datetime | None = None
    is_active: bool | None = None


class ApiKeyView(BaseHTTPSchema):
    id: str
    name: str
    description: str | None = None
    key_prefix: str
    scopes: list[str]
    workflow_ids: list[str]
    project_ids: list[str]
    org_id: str | None = None
    rate_limit: int
    usage_count: int
    last_used_at: datetime | None = None
    last_used_ip: str | None = None
    expires_at: datetime | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ApiKeyRecord) -> ApiKeyView:
        return cls(
            id=record.id,
            name=record.name,
            description=record.description,
            key_prefix=record.key_prefix,
            scopes=list(record.scopes),
            workflow_ids=list(record.workflow_ids),
            project_ids=list(record.project_ids),
            org_id=record.org_id,
            rate_limit=record.rate_limit,
            usage_count=record.usage_count,
            last_used_at=record.last_used_at,
            last_used_ip=record.last_used_ip,
            expires_at=record.expires_at,
            is_active=record.is_active,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class ApiKeyCreatedView(ApiKeyView):
    key: str = Field(..., description="Raw API key. Shown only once.")

    @classmethod
    def issued(cls, record: ApiKeyRecord, raw_key: str) -> ApiKeyCreatedView:
        view = ApiKeyView.from_record(record)
        return cls(**view.model_dump(), key=raw_key)


class ApiKeyStatsView(BaseHTTPSchema):
    usage_count: int
    rate_limit: int
    rate_limit_used: int
    rate_limit_remaining: int
    rate_limit_reset: datetime | None = None
    rate_limit_reset_in: int | None = None
    last_used_at: datetime | None = None
    last_used_ip: str | None = None
    created_at: datetime | None = None


class ScopeView(BaseHTTPSchema):
    scope: str
    description: str
