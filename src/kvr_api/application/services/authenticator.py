# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Unified Authenticator

Purpose:
    Turn the credentials presented on a request into one ``Principal``,
    whatever their kind.

Dispatch:
    1. API key present -> key validation, owner lookup, ``api-key`` principal,
       usage recorded in the background.
    2. No bearer token -> developer principal when the bypass is configured,
       otherwise ``NoCredential``.
    3. Token looks external and external auth is active -> external
       validation plus shadow identity resolution.
    4. Otherwise, local auth active -> local validation.
    5. Otherwise -> ``AuthMethodUnavailable``.

    Token validator failures surface as ``InvalidOrExpiredToken``; the
    underlying reason is only attached when diagnostics are enabled
    (development). A requested organization must belong to the principal.

Layer: application/services
"""
from __future__ import annotations

from dataclasses import dataclass

from kvr_api.application.services.api_key_validator import ApiKeyValidator
from kvr_api.application.services.shadow_identity import ShadowIdentityResolver
from kvr_api.application.services.usage_recorder import UsageRecorder
from kvr_api.application.uow import UnitOfWorkFactory
from kvr_api.domain.entities.auth_records import ApiKeyRecord
from kvr_api.domain.entities.principal import ApiKeyGrant, Principal
from kvr_api.domain.enums.auth import AuthSource, OrgRole
from kvr_api.domain.exceptions.auth import (
    ApiKeyOwnerNotFound,
    AuthError,
    AuthMethodUnavailable,
    InvalidOrExpiredToken,
    InvalidToken,
    NoCredential,
    OrgAccessDenied,
    OrgContextRequired,
)
from kvr_api.domain.interfaces.repositories.auth_repositories import IdentityRepository
from kvr_api.infrastructure.auth.dev_bypass import DevBypass
from kvr_api.infrastructure.logging.logger import get_json_logger
from kvr_api.infrastructure.observability.metrics import get_auth_attempts_total
from kvr_api.infrastructure.security.external_tokens import ExternalTokenValidator
from kvr_api.infrastructure.security.local_tokens import LocalTokenService
from kvr_api.infrastructure.security.token_classifier import TokenClassifier

__all__ = ["Authenticator", "Credentials"]

logger = get_json_logger(__name__)


@dataclass(frozen=True, slots=True)
class Credentials:
    """Credential material extracted from one request.

    Attributes:
        api_key: Raw API key (already prefix-checked), if presented.
        bearer_token: Raw bearer JWT, if presented and not an API key.
        requested_org_id: Value of ``X-Organization-Id``, if sent.
        client_ip: Caller address, recorded on API key usage.
    """

    api_key: str | None = None
    bearer_token: str | None = None
    requested_org_id: str | None = None
    client_ip: str | None = None


class Authenticator:
    """Orchestrates credential validation.

    Every collaborator is optional; a missing one means that credential
    family is disabled.
    """

    def __init__(
        self,
        *,
        uow_factory: UnitOfWorkFactory,
        local_tokens: LocalTokenService | None = None,
        classifier: TokenClassifier | None = None,
        external_validator: ExternalTokenValidator | None = None,
        shadow_resolver: ShadowIdentityResolver | None = None,
        api_key_validator: ApiKeyValidator | None = None,
        usage_recorder: UsageRecorder | None = None,
        dev_bypass: DevBypass | None = None,
        expose_diagnostics: bool = False,
        log_events: bool = True,
        require_org_context: bool = False,
    ) -> None:
        self._uow_factory = uow_factory
        self._local_tokens = local_tokens
        self._classifier = classifier
        self._external_validator = external_validator
        self._shadow_resolver = shadow_resolver
        self._api_key_validator = api_key_validator
        self._usage_recorder = usage_recorder
        self._dev_bypass = dev_bypass
        self._expose_diagnostics = expose_diagnostics
        self._log_events = log_events
        self._require_org_context = require_org_context

    @property
    def api_keys_enabled(self) -> bool:
        return self._api_key_validator is not None

    async def authenticate(
        self,
        credentials: Credentials,
        *,
        required_scope: str | None = None,
        resource_id: str | None = None,
    ) -> Principal:
        """Authenticate ``credentials`` and return the request principal.

        Args:
            credentials: Extracted request credentials.
            required_scope: Scope an API key must hold for this route.
            resource_id: Workflow id an API key must be allowed to use.

        Raises:
            AuthError: Any 401/403/429 condition from the taxonomy.
        """
        try:
            if credentials.api_key and self._api_key_validator is not None:
                principal = await self._authenticate_api_key(
                    self._api_key_validator,
                    credentials.api_key,
                    credentials,
                    required_scope=required_scope,
                    resource_id=resource_id,
                )
            else:
                principal = await self._authenticate_bearer(credentials)
                principal = self._apply_requested_org(principal, credentials.requested_org_id)
        except AuthError as exc:
            source = "api-key" if credentials.api_key else "jwt"
            get_auth_attempts_total().labels(source=source, outcome=exc.code).inc()
            raise

        if (
            self._require_org_context
            and principal.org_id is None
            and principal.auth_source is not AuthSource.DEV_BYPASS
        ):
            raise OrgContextRequired()

        get_auth_attempts_total().labels(
            source=principal.auth_source.value, outcome="success"
        ).inc()
        if self._log_events:
            logger.info(
                "auth.authenticated",
                extra={
                    "extra": {
                        "source": principal.auth_source.value,
                        "user_id": principal.user_id,
                        "org_id": principal.org_id,
                    }
                },
            )
        return principal

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------
    async def _authenticate_api_key(
        self,
        validator: ApiKeyValidator,
        api_key: str,
        credentials: Credentials,
        *,
        required_scope: str | None,
        resource_id: str | None,
    ) -> Principal:
        result = await validator.validate(
            api_key,
            required_scope=required_scope,
            resource_id=resource_id,
            requested_org_id=credentials.requested_org_id,
        )
        record = result.raise_for_failure()

        async with self._uow_factory() as uow:
            owner = await uow.get_repository(IdentityRepository).get_by_id(record.owner_id)
        if owner is None or not owner.is_active:
            raise ApiKeyOwnerNotFound()

        if self._usage_recorder is not None:
            self._usage_recorder.schedule(record.id, credentials.client_ip)

        org_id = record.org_id or credentials.requested_org_id
        return Principal(
            user_id=owner.id,
            email=owner.email,
            display_name=owner.display_name,
            roles=owner.roles,
            auth_source=AuthSource.API_KEY,
            external_id=owner.external_id,
            org_id=org_id,
            org_ids=(org_id,) if org_id else (),
            org_role=OrgRole.MEMBER.value,
            api_key=_grant(record),
        )

    # ------------------------------------------------------------------
    # Bearer tokens
    # ------------------------------------------------------------------
    async def _authenticate_bearer(self, credentials: Credentials) -> Principal:
        token = credentials.bearer_token
        if not token:
            if self._dev_bypass is not None:
                return self._dev_bypass.principal(credentials.requested_org_id)
            raise NoCredential()

        try:
            if (
                self._external_validator is not None
                and self._classifier is not None
                and self._classifier.looks_external(token)
            ):
                principal = await self._external_validator.validate(token)
                if self._shadow_resolver is not None:
                    local_id = await self._shadow_resolver.ensure_local_identity(principal)
                    principal = principal.with_user_id(local_id)
                return principal
            if self._local_tokens is not None:
                return self._local_tokens.validate(token)
        except InvalidToken as exc:
            logger.info(
                "auth.token_rejected",
                extra={"extra": {"reason": exc.code, "detail": exc.message}},
            )
            details = None
            if self._expose_diagnostics:
                details = {"reason": exc.code, "detail": exc.message}
            raise InvalidOrExpiredToken(details=details) from exc

        raise AuthMethodUnavailable()

    @staticmethod
    def _apply_requested_org(principal: Principal, requested_org_id: str | None) -> Principal:
        if not requested_org_id or principal.auth_source is AuthSource.DEV_BYPASS:
            return principal
        if not principal.can_access_org(requested_org_id):
            raise OrgAccessDenied(details={"orgId": requested_org_id})
        return principal.with_org(requested_org_id)


def _grant(record: ApiKeyRecord) -> ApiKeyGrant:
    return ApiKeyGrant(
        key_id=record.id,
        name=record.name,
        prefix=record.key_prefix,
        scopes=record.scopes,
        workflow_ids=record.workflow_ids,
        project_ids=record.project_ids,
        org_id=record.org_id,
    )
