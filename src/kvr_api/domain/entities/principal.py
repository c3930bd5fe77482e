# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Principal (Domain Layer).

Purpose:
    The normalized per-request identity produced by every credential path
    (local JWT, external SSO JWT, API key, developer bypass). Handlers and
    guards only ever see this value, never raw claims.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from kvr_api.domain.enums.auth import AuthSource


@dataclass(frozen=True, slots=True)
class ApiKeyGrant:
    """What an API key allows, attached to API-key principals only.

    Attributes:
        key_id: Primary key of the API key record.
        name: Human label of the key.
        prefix: Display prefix (first characters of the secret).
        scopes: Granted scope strings.
        workflow_ids: Allowed workflow ids. Empty means unrestricted.
        project_ids: Projects the key was issued for.
        org_id: Tenant the key is bound to, if any.
    """

    key_id: str
    name: str
    prefix: str
    scopes: tuple[str, ...] = ()
    workflow_ids: tuple[str, ...] = ()
    project_ids: tuple[str, ...] = ()
    org_id: str | None = None

    def allows_workflow(self, workflow_id: str) -> bool:
        return not self.workflow_ids or workflow_id in self.workflow_ids


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity for one request.

    Attributes:
        user_id: Local identity id (shadow id for external users when linked).
        email: Email address, if known.
        auth_source: Credential family that produced this principal.
        roles: Application roles, already mapped to canonical names.
        permissions: Feature permissions (``feature:action`` strings).
        external_id: Subject id at the external identity provider.
        display_name: Human-readable name.
        org_id: Effective organization for this request.
        org_name: Display name of ``org_id`` when known.
        org_ids: All organizations the principal may act in.
        org_role: Role inside ``org_id``.
        token_expiry: Expiry of the presented token, if any.
        api_key: Grant details for API-key principals.
    """

    user_id: str
    email: str | None
    auth_source: AuthSource
    roles: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()
    external_id: str | None = None
    display_name: str | None = None
    org_id: str | None = None
    org_name: str | None = None
    org_ids: tuple[str, ...] = field(default_factory=tuple)
    org_role: str | None = None
    token_expiry: datetime | None = None
    api_key: ApiKeyGrant | None = None

    @property
    def primary_role(self) -> str | None:
        return self.roles[0] if self.roles else None

    def can_access_org(self, org_id: str) -> bool:
        """True when ``org_id`` is the primary org or one of ``org_ids``."""
        return org_id == self.org_id or org_id in self.org_ids

    def with_org(self, org_id: str) -> Principal:
        """Return a copy whose effective organization is ``org_id``."""
        return replace(self, org_id=org_id)

    def with_user_id(self, user_id: str) -> Principal:
        return replace(self, user_id=user_id)
