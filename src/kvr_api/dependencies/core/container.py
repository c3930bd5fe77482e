# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Composition root for the authentication core.

Builds every auth collaborator from ``Settings`` exactly once per application
and exposes them on ``app.state.container``. Components are only constructed
for the credential families the configuration enables; the developer bypass in
particular is never built unless ``DEV_AUTH_BYPASS`` is set.

The JWKS cache lives here so it is shared by all requests of one app and can be
replaced wholesale in tests.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import httpx

from kvr_api.adapters.uow.sqlalchemy_uow import SqlAlchemyUnitOfWork
from kvr_api.application.services.accounts import AccountService
from kvr_api.application.services.api_key_validator import ApiKeyValidator
from kvr_api.application.services.api_keys import ApiKeyService
from kvr_api.application.services.authenticator import Authenticator
from kvr_api.application.services.shadow_identity import ShadowIdentityResolver
from kvr_api.application.services.usage_recorder import UsageRecorder
from kvr_api.application.uow import UnitOfWork, UnitOfWorkFactory
from kvr_api.config.features.auth import (
    api_key_settings,
    dev_bypass_settings,
    local_jwt_settings,
    shadow_user_settings,
    tah_settings,
)
from kvr_api.config.settings import Environment, Settings
from kvr_api.infrastructure.auth.dev_bypass import DevBypass
from kvr_api.infrastructure.database.session import get_sessionmaker
from kvr_api.infrastructure.security.external_tokens import ExternalTokenValidator
from kvr_api.infrastructure.security.jwks import JwksCache, JwksFetcher, JwksKeyResolver
from kvr_api.infrastructure.security.local_tokens import LocalTokenService
from kvr_api.infrastructure.security.token_classifier import TokenClassifier


def default_uow_factory() -> UnitOfWork:
    """Build a SQLAlchemy UoW against the (lazily initialized) global sessionmaker."""
    return SqlAlchemyUnitOfWork(session_factory=get_sessionmaker())


@dataclass
class AuthContainer:
    settings: Settings
    uow_factory: UnitOfWorkFactory
    authenticator: Authenticator
    accounts: AccountService | None
    api_keys: ApiKeyService
    usage_recorder: UsageRecorder | None
    jwks_cache: JwksCache | None
    jwks_resolver: JwksKeyResolver | None
    api_key_prefixes: tuple[str, ...]


def build_container(
    settings: Settings,
    *,
    uow_factory: UnitOfWorkFactory | None = None,
    jwks_cache: JwksCache | None = None,
    jwks_fetcher: JwksFetcher | None = None,
    http_client: httpx.AsyncClient | None = None,
    clock: Callable[[], datetime] | None = None,
) -> AuthContainer:
    """Wire the auth core from settings.

    Args:
        settings: Validated application settings.
        uow_factory: Override for the Unit of Work factory (tests).
        jwks_cache: Override for the shared JWKS cache (tests).
        jwks_fetcher: Override for JWKS HTTP fetching (tests).
        http_client: Shared HTTP client for JWKS fetches.
        clock: Override for the wall clock used by time-sensitive services.
    """
    uow = uow_factory or default_uow_factory
    clock_kwargs = {"clock": clock} if clock is not None else {}

    local_cfg = local_jwt_settings(settings)
    local_tokens = LocalTokenService(local_cfg, **clock_kwargs) if local_cfg.enabled else None

    tah_cfg = tah_settings(settings)
    classifier: TokenClassifier | None = None
    external: ExternalTokenValidator | None = None
    shadow: ShadowIdentityResolver | None = None
    cache: JwksCache | None = None
    resolver: JwksKeyResolver | None = None
    if tah_cfg.enabled:
        cache = jwks_cache or JwksCache(ttl_seconds=tah_cfg.jwks_cache_ttl)
        resolver = JwksKeyResolver(
            jwks_url=tah_cfg.jwks_url,
            cache=cache,
            static_key=tah_cfg.public_key,
            timeout=tah_cfg.jwks_timeout_seconds,
            min_refresh_seconds=tah_cfg.jwks_min_refresh_seconds,
            http_client=http_client,
            fetcher=jwks_fetcher,
        )
        classifier = TokenClassifier(issuer=tah_cfg.issuer, audience=tah_cfg.audience)
        external = ExternalTokenValidator(tah_cfg, resolver)
        shadow = ShadowIdentityResolver(shadow_user_settings(settings), uow, **clock_kwargs)

    key_cfg = api_key_settings(settings)
    validator: ApiKeyValidator | None = None
    recorder: UsageRecorder | None = None
    if key_cfg.enabled:
        validator = ApiKeyValidator(uow, window_seconds=key_cfg.window_seconds, **clock_kwargs)
        recorder = UsageRecorder(uow, window_seconds=key_cfg.window_seconds, **clock_kwargs)

    bypass_cfg = dev_bypass_settings(settings)
    dev_bypass = DevBypass(bypass_cfg, settings.environment) if bypass_cfg.enabled else None

    authenticator = Authenticator(
        uow_factory=uow,
        local_tokens=local_tokens,
        classifier=classifier,
        external_validator=external,
        shadow_resolver=shadow,
        api_key_validator=validator,
        usage_recorder=recorder,
        dev_bypass=dev_bypass,
        expose_diagnostics=settings.environment is Environment.DEVELOPMENT,
        log_events=settings.log_auth_events,
        require_org_context=settings.require_org_context,
    )

    accounts = (
        AccountService(
            uow,
            local_tokens,
            refresh_ttl_seconds=local_cfg.refresh_ttl_seconds,
            **clock_kwargs,
        )
        if local_tokens is not None
        else None
    )

    return AuthContainer(
        settings=settings,
        uow_factory=uow,
        authenticator=authenticator,
        accounts=accounts,
        api_keys=ApiKeyService(uow, default_rate_limit=key_cfg.default_rate_limit, **clock_kwargs),
        usage_recorder=recorder,
        jwks_cache=cache,
        jwks_resolver=resolver,
        api_key_prefixes=key_cfg.prefixes if key_cfg.enabled else (),
    )
