# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""External (TAH) token validation.

Purpose:
    Verify an RS256 token issued by the Tenant Access Hub end-to-end (signing
    key via JWKS, signature, issuer, audience, expiry with clock tolerance) and
    map its claims into an ``external`` principal.

Layer:
    infrastructure/security
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from jose import JWTError, jwt

from kvr_api.config.features.auth import TahSettings
from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.enums.auth import AuthSource
from kvr_api.domain.exceptions.auth import InvalidToken
from kvr_api.domain.services.role_mapping import map_org_role
from kvr_api.infrastructure.security.external_claims import (
    DEFAULT_ROLE_STRATEGIES,
    RoleStrategy,
    extract_permissions,
    extract_roles,
)
from kvr_api.infrastructure.security.jwks import JwksKeyResolver

__all__ = ["ExternalTokenValidator"]

_ALGORITHMS = ["RS256", "RS384", "RS512"]


class ExternalTokenValidator:
    """Validate TAH tokens and build principals.

    Args:
        settings: TAH configuration (issuer, audience, app id, tolerance).
        resolver: Signing-key resolver.
        role_strategies: Ordered role extraction strategies.
    """

    def __init__(
        self,
        settings: TahSettings,
        resolver: JwksKeyResolver,
        role_strategies: tuple[RoleStrategy, ...] = DEFAULT_ROLE_STRATEGIES,
    ) -> None:
        self._settings = settings
        self._resolver = resolver
        self._role_strategies = role_strategies

    async def validate(self, token: str) -> Principal:
        """Verify ``token`` and return an ``external`` principal.

        Raises:
            InvalidToken: Signature, issuer, audience, expiry or structure failure.
                Key resolution failures (``SigningKeyNotFound``,
                ``UnsupportedKeyType``, ``JwksFetchFailed``) are subclasses.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise InvalidToken("Malformed token header") from exc

        kid = header.get("kid")
        key = await self._resolver.resolve_signing_key(kid if isinstance(kid, str) else None)

        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                key,
                algorithms=_ALGORITHMS,
                audience=self._settings.audience,
                issuer=self._settings.issuer,
                options={
                    "leeway": self._settings.clock_tolerance,
                    "require_aud": True,
                    "require_iss": True,
                    "require_exp": True,
                },
            )
        except JWTError as exc:
            raise InvalidToken(str(exc) or "Invalid token") from exc

        return self._to_principal(claims)

    def _to_principal(self, claims: dict[str, Any]) -> Principal:
        sub = claims.get("sub")
        if not isinstance(sub, str) or not sub:
            raise InvalidToken("Token carries no subject")

        app_id = self._settings.app_id
        org_id = claims.get("org_id")
        org_ids = claims.get("org_ids")
        if isinstance(org_ids, list) and org_ids:
            resolved_org_ids = tuple(str(o) for o in org_ids)
        elif org_id:
            resolved_org_ids = (str(org_id),)
        else:
            resolved_org_ids = ()

        exp = claims.get("exp")
        return Principal(
            user_id=sub,
            external_id=sub,
            email=claims.get("email"),
            display_name=claims.get("name") or claims.get("preferred_username"),
            roles=extract_roles(claims, app_id, self._role_strategies),
            permissions=extract_permissions(claims, app_id),
            auth_source=AuthSource.EXTERNAL,
            org_id=str(org_id) if org_id else None,
            org_name=claims.get("org_name"),
            org_ids=resolved_org_ids,
            org_role=map_org_role(claims.get("org_role")),
            token_expiry=(
                datetime.fromtimestamp(exp, tz=UTC) if isinstance(exp, (int, float)) else None
            ),
        )
