# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Authentication dependencies (FastAPI).

Reads credential headers from the request itself (no FastAPI header params,
so a missing header never turns into a 422) and delegates to the
``Authenticator`` held by the application container.

Headers:
    * ``X-API-Key``: API key (prefix-checked).
    * ``Authorization: Bearer <jwt | api key>``.
    * ``X-Organization-Id``: requested organization context.

The resolved principal is stored on ``request.state.principal`` so guards and
the access log can see it, and bound to the logging context.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Request

from kvr_api.application.services.api_key_validator import extract_api_key
from kvr_api.application.services.authenticator import Credentials
from kvr_api.dependencies.core.container import AuthContainer
from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.enums.auth import AuthSource
from kvr_api.domain.exceptions.auth import AuthError, AuthSourceNotAllowed
from kvr_api.infrastructure.logging.logger import bind_principal_context
from kvr_api.infrastructure.middleware.request_context import client_ip_of

__all__ = [
    "authenticate",
    "extract_credentials",
    "get_container",
    "optional_principal",
    "require_auth_source",
    "require_principal",
]


def get_container(request: Request) -> AuthContainer:
    container: AuthContainer = request.app.state.container
    return container


def _bearer_value(authorization: str | None) -> str | None:
    auth = (authorization or "").strip()
    if not auth.lower().startswith("bearer "):
        return None
    return auth[7:].strip() or None


def extract_credentials(request: Request, prefixes: tuple[str, ...]) -> Credentials:
    """Collect credential material from ``request`` headers.

    A bearer value that is itself an API key is not passed on as a JWT.
    """
    authorization = request.headers.get("Authorization")
    api_key = (
        extract_api_key(request.headers.get("X-API-Key"), authorization, prefixes)
        if prefixes
        else None
    )
    bearer = _bearer_value(authorization)
    if bearer is not None and bearer == api_key:
        bearer = None
    org = (request.headers.get("X-Organization-Id") or "").strip() or None
    return Credentials(
        api_key=api_key,
        bearer_token=bearer,
        requested_org_id=org,
        client_ip=client_ip_of(request),
    )


async def _resolve(
    request: Request, *, scope: str | None = None, resource_id_param: str | None = None
) -> Principal:
    container = get_container(request)
    credentials = extract_credentials(request, container.api_key_prefixes)
    resource_id = request.path_params.get(resource_id_param) if resource_id_param else None
    principal = await container.authenticator.authenticate(
        credentials,
        required_scope=scope,
        resource_id=str(resource_id) if resource_id is not None else None,
    )
    request.state.principal = principal
    bind_principal_context(
        user_id=principal.user_id,
        auth_source=principal.auth_source.value,
        org_id=principal.org_id,
    )
    return principal


async def require_principal(request: Request) -> Principal:
    """Authenticate the request or fail with the matching 401/403/429 error."""
    return await _resolve(request)


async def optional_principal(request: Request) -> Principal | None:
    """Like :func:`require_principal`, but anonymous (``None``) on any auth failure."""
    try:
        return await _resolve(request)
    except AuthError:
        return None


def authenticate(
    scope: str | None = None, resource_id_param: str | None = None
) -> Callable[[Request], Awaitable[Principal]]:
    """Build a dependency that authenticates with API-key scope/workflow checks.

    Args:
        scope: Scope an API key must hold. Ignored for token principals.
        resource_id_param: Path parameter naming the workflow an API key must
            be allowed to use.
    """

    async def _dep(request: Request) -> Principal:
        return await _resolve(request, scope=scope, resource_id_param=resource_id_param)

    return _dep


def require_auth_source(
    *sources: AuthSource,
) -> Callable[[Request], Awaitable[Principal]]:
    """Authenticate, then only admit principals from the given credential families."""
    allowed = frozenset(sources)

    async def _dep(request: Request) -> Principal:
        principal = await _resolve(request)
        if principal.auth_source not in allowed:
            raise AuthSourceNotAllowed(
                details={
                    "allowed": sorted(s.value for s in allowed),
                    "current": principal.auth_source.value,
                }
            )
        return principal

    return _dep
