# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Role Mapping

Purpose:
    Translate role names issued by the external identity provider (which may be
    Portuguese, English or vendor-specific) into KVR's canonical roles.

Behavior:
    * Lookup is case-insensitive and whitespace-trimmed.
    * Unknown names pass through upper-cased.
    * Mapping is idempotent: ``map_role(map_role(x)) == map_role(x)``.

Layer: domain/services
"""
from __future__ import annotations

from collections.abc import Iterable

from kvr_api.domain.enums.auth import OrgRole, Role

__all__ = ["ROLE_MAPPING", "map_org_role", "map_role", "map_roles"]

ROLE_MAPPING: dict[str, str] = {
    # Administrative
    "administrador": Role.ADMIN.value,
    "gerente": Role.ADMIN.value,
    "gestor": Role.ADMIN.value,
    "admin": Role.ADMIN.value,
    "administrator": Role.ADMIN.value,
    "superadmin": Role.ADMIN.value,
    "super_admin": Role.ADMIN.value,
    "super-admin": Role.ADMIN.value,
    "sysadmin": Role.ADMIN.value,
    "manager": Role.ADMIN.value,
    "moderator": Role.ADMIN.value,
    # Ownership
    "proprietario": Role.OWNER.value,
    "proprietário": Role.OWNER.value,
    "owner": Role.OWNER.value,
    # Development
    "desenvolvedor": Role.DEVELOPER.value,
    "developer": Role.DEVELOPER.value,
    "dev": Role.DEVELOPER.value,
    "editor": Role.DEVELOPER.value,
    # Regular users
    "usuario": Role.USER.value,
    "usuário": Role.USER.value,
    "user": Role.USER.value,
    "member": Role.USER.value,
    # Read-only
    "visualizador": Role.VIEWER.value,
    "viewer": Role.VIEWER.value,
}


def map_role(name: str) -> str:
    """Return the canonical role for an external role name."""
    normalized = name.strip().lower()
    return ROLE_MAPPING.get(normalized, name.strip().upper())


def map_roles(names: Iterable[str]) -> tuple[str, ...]:
    """Map every name, dropping blanks and duplicates while keeping order."""
    seen: dict[str, None] = {}
    for name in names:
        if not isinstance(name, str) or not name.strip():
            continue
        seen.setdefault(map_role(name), None)
    return tuple(seen)


def map_org_role(name: str | None) -> str:
    """Map an external organization role, defaulting to ``MEMBER``.

    Organization roles use the membership tier vocabulary, so the application
    role ``USER`` folds into ``MEMBER`` and ``DEVELOPER`` into ``MEMBER``.
    """
    if not name or not name.strip():
        return OrgRole.MEMBER.value
    mapped = map_role(name)
    if mapped in (Role.USER.value, Role.DEVELOPER.value):
        return OrgRole.MEMBER.value
    return mapped
