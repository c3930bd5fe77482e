# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Role and permission extraction from external (TAH) token claims.

The identity provider does not emit roles in one fixed place. Extraction is an
ordered list of strategy functions; the first one returning a non-empty list
wins. Strategies receive the full claim set and the application id.

Role order:
    1. ``apps[<app_id>].roles`` (list or string)
    2. ``apps[<app_id>].role`` (string)
    3. ``roles`` (list)
    4. ``role`` (string)
    5. ``org_role`` (string)
    6. ``perfil`` (string or list)
    7. ``perfis`` (list or string)
    8. ``groups`` (list or string)
    9. ``realm_access.roles`` (list)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from kvr_api.domain.enums.auth import Role
from kvr_api.domain.services.role_mapping import map_roles

__all__ = [
    "DEFAULT_ROLE_STRATEGIES",
    "RoleStrategy",
    "extract_permissions",
    "extract_roles",
]

Claims = Mapping[str, Any]
RoleStrategy = Callable[[Claims, str], list[str]]


def _as_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str) and v.strip()]
    return []


def _as_single(value: Any) -> list[str]:
    if isinstance(value, str) and value.strip():
        return [value]
    return []


def _as_list_or_single(value: Any) -> list[str]:
    return _as_list(value) or _as_single(value)


def _app_claims(claims: Claims, app_id: str) -> Mapping[str, Any]:
    apps = claims.get("apps")
    if isinstance(apps, Mapping):
        app = apps.get(app_id)
        if isinstance(app, Mapping):
            return app
    return {}


def _claim_list(name: str) -> RoleStrategy:
    return lambda claims, _app_id: _as_list(claims.get(name))


def _claim_single(name: str) -> RoleStrategy:
    return lambda claims, _app_id: _as_single(claims.get(name))


def _claim_any(name: str) -> RoleStrategy:
    return lambda claims, _app_id: _as_list_or_single(claims.get(name))


def _app_roles(claims: Claims, app_id: str) -> list[str]:
    return _as_list_or_single(_app_claims(claims, app_id).get("roles"))


def _app_role(claims: Claims, app_id: str) -> list[str]:
    return _as_single(_app_claims(claims, app_id).get("role"))


def _realm_roles(claims: Claims, _app_id: str) -> list[str]:
    realm = claims.get("realm_access")
    if isinstance(realm, Mapping):
        return _as_list(realm.get("roles"))
    return []


DEFAULT_ROLE_STRATEGIES: tuple[RoleStrategy, ...] = (
    _app_roles,
    _app_role,
    _claim_list("roles"),
    _claim_single("role"),
    _claim_single("org_role"),
    _claim_any("perfil"),
    _claim_any("perfis"),
    _claim_any("groups"),
    _realm_roles,
)


def extract_roles(
    claims: Claims,
    app_id: str,
    strategies: Sequence[RoleStrategy] = DEFAULT_ROLE_STRATEGIES,
) -> tuple[str, ...]:
    """Return canonical roles from the first strategy that yields any, else ``USER``."""
    for strategy in strategies:
        raw = strategy(claims, app_id)
        if raw:
            mapped = map_roles(raw)
            if mapped:
                return mapped
    return (Role.USER.value,)


def extract_permissions(claims: Claims, app_id: str) -> tuple[str, ...]:
    """Return top-level ``permissions``, else ``apps[<app_id>].permissions``, else empty."""
    top = _as_list(claims.get("permissions"))
    if top:
        return tuple(top)
    return tuple(_as_list(_app_claims(claims, app_id).get("permissions")))
