# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Auth Feature Settings (Adapters-facing views)

Summary:
    Minimal, typed projections of authentication-related configuration for
    infrastructure components. Each validator/resolver receives only the slice
    it needs, which keeps infra decoupled from the full Settings surface and
    lets tests build components without touching the process environment.

Notes:
    • No logging/printing of secrets.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from kvr_api.config.settings import Settings

__all__ = [
    "ApiKeySettings",
    "DevBypassSettings",
    "LocalJwtSettings",
    "ShadowUserSettings",
    "TahSettings",
    "api_key_settings",
    "dev_bypass_settings",
    "local_jwt_settings",
    "shadow_user_settings",
    "tah_settings",
]


class _View(BaseModel):
    model_config = ConfigDict(frozen=True)


class TahSettings(_View):
    """External identity provider (Tenant Access Hub) configuration."""

    enabled: bool = False
    issuer: str = ""
    jwks_url: str = ""
    audience: str = "kvr"
    public_key: str | None = None
    app_id: str = "kvr"
    jwks_cache_ttl: int = 3600
    jwks_min_refresh_seconds: int = 30
    jwks_timeout_seconds: float = 5.0
    clock_tolerance: int = 30


class LocalJwtSettings(_View):
    """Local HS256 token configuration.

    Attributes:
        secret: Shared signing secret. Empty when local auth is disabled.
        access_ttl_seconds: Access token lifetime.
        refresh_ttl_seconds: Refresh token lifetime.
        issuer: `iss` claim for issued tokens.
    """

    enabled: bool = False
    secret: str = Field(default="", repr=False)
    access_ttl_seconds: int = 900
    refresh_ttl_seconds: int = 604_800
    issuer: str = "kvr"


class ShadowUserSettings(_View):
    """Shadow identity creation/sync toggles."""

    create: bool = True
    sync_on_login: bool = True
    default_role: str = "USER"


class ApiKeySettings(_View):
    """API key acceptance and rate-limit window configuration."""

    enabled: bool = True
    prefixes: tuple[str, ...] = ("kvr_", "orc_", "ak_", "sk_")
    default_rate_limit: int = 1000
    window_seconds: int = 3600


class DevBypassSettings(_View):
    """Fixed developer identity used when the bypass is on."""

    enabled: bool = False
    user_id: str = "dev-user"
    email: str = "dev@localhost"
    role: str = "DEVELOPER"
    org_id: str | None = None


def tah_settings(settings: Settings) -> TahSettings:
    return TahSettings(
        enabled=settings.tah_active,
        issuer=settings.tah_issuer or "",
        jwks_url=settings.tah_jwks_url or "",
        audience=settings.tah_audience,
        public_key=settings.tah_public_key,
        app_id=settings.tah_app_id,
        jwks_cache_ttl=settings.tah_jwks_cache_ttl,
        jwks_min_refresh_seconds=settings.tah_jwks_min_refresh_seconds,
        jwks_timeout_seconds=settings.tah_jwks_timeout_seconds,
        clock_tolerance=settings.tah_clock_tolerance,
    )


def local_jwt_settings(settings: Settings) -> LocalJwtSettings:
    return LocalJwtSettings(
        enabled=settings.local_active,
        secret=settings.jwt_secret.get_secret_value() if settings.jwt_secret else "",
        access_ttl_seconds=settings.jwt_access_expiration_seconds,
        refresh_ttl_seconds=settings.jwt_refresh_expiration_seconds,
        issuer=settings.jwt_issuer,
    )


def shadow_user_settings(settings: Settings) -> ShadowUserSettings:
    return ShadowUserSettings(
        create=settings.tah_create_shadow_user,
        sync_on_login=settings.tah_sync_on_login,
        default_role=settings.tah_default_role,
    )


def api_key_settings(settings: Settings) -> ApiKeySettings:
    return ApiKeySettings(
        enabled=settings.api_key_auth_enabled,
        prefixes=settings.api_key_prefixes,
        default_rate_limit=settings.api_key_default_rate_limit,
        window_seconds=settings.api_key_rate_limit_window_seconds,
    )


def dev_bypass_settings(settings: Settings) -> DevBypassSettings:
    return DevBypassSettings(
        enabled=settings.dev_auth_bypass,
        user_id=settings.dev_user_id,
        email=settings.dev_user_email,
        role=settings.dev_user_role,
        org_id=settings.dev_org_id,
    )
