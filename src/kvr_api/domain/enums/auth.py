# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Authentication enumerations.

Purpose:
    Stable vocabulary for the origin of a request identity and the role tiers
    used by authorization guards.

Layer:
    domain
"""

from __future__ import annotations

from enum import Enum


class AuthSource(str, Enum):
    """Which credential produced a principal."""

    LOCAL = "local"
    EXTERNAL = "external"
    API_KEY = "api-key"
    DEV_BYPASS = "dev-bypass"


class Role(str, Enum):
    """Application roles understood by KVR.

    Values outside this set can still appear on a principal (unmapped external
    roles pass through upper-cased); guards compare plain strings.
    """

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    DEVELOPER = "DEVELOPER"
    USER = "USER"
    VIEWER = "VIEWER"


class OrgRole(str, Enum):
    """Role of an identity inside one organization, lowest to highest."""

    VIEWER = "VIEWER"
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


ORG_ROLE_RANK: dict[str, int] = {
    OrgRole.VIEWER.value: 1,
    OrgRole.MEMBER.value: 2,
    OrgRole.ADMIN.value: 3,
    OrgRole.OWNER.value: 4,
}
