# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Permission Matching

Purpose:
    Pure predicates used by authorization guards: feature permission matching
    with wildcards, scope membership and organization role hierarchy.

Permission grammar:
    ``<feature_id>:<action>`` where ``feature_id`` is dotted, e.g.
    ``kvr.resources:read``. A holder is granted when any of its permissions is
    ``*``, ``*:*``, the exact permission, ``<feature_id>:*``, ``<category>:*``
    or ``<category>:<action>`` where ``category`` is the first dotted segment.

Layer: domain/services
"""
from __future__ import annotations

from collections.abc import Iterable

from kvr_api.domain.enums.auth import ORG_ROLE_RANK

__all__ = ["has_min_org_role", "has_permission", "has_scope"]


def has_permission(permissions: Iterable[str], feature_id: str, action: str) -> bool:
    """Return True when ``permissions`` grant ``action`` on ``feature_id``."""
    held = set(permissions)
    if not held:
        return False
    category = feature_id.split(".", 1)[0]
    candidates = {
        "*",
        "*:*",
        f"{feature_id}:{action}",
        f"{feature_id}:*",
        f"{category}:*",
        f"{category}:{action}",
    }
    return not held.isdisjoint(candidates)


def has_scope(scopes: Iterable[str], required: str) -> bool:
    return required in set(scopes)


def has_min_org_role(current: str | None, minimum: str) -> bool:
    """Compare organization roles on the VIEWER < MEMBER < ADMIN < OWNER ladder."""
    if not current:
        return False
    return ORG_ROLE_RANK.get(current, 0) >= ORG_ROLE_RANK.get(minimum, 0)
