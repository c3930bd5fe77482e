# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Authentication & Authorization Exceptions

Purpose:
    Error taxonomy raised by credential validators, the unified authenticator
    and authorization guards. Every error carries a stable ``code`` and the
    HTTP status adapters map it to. Credential problems are 401, authorization
    denials 403, rate limiting 429. None of these ever surface as 5xx.

    ``InvalidToken``, ``SigningKeyNotFound``, ``UnsupportedKeyType`` and
    ``JwksFetchFailed`` are validator-internal; the authenticator converts them
    into ``InvalidOrExpiredToken`` before they reach a client.

Layer: domain/exceptions
"""
from __future__ import annotations

from typing import Any

from .base import DomainError


class AuthError(DomainError):
    """Base class for authentication and authorization failures."""

    code = "AUTH_ERROR"
    http_status = 401
    default_message = "Authentication failed"


# --------------------------------------------------------------------------- #
# 401: credential problems
# --------------------------------------------------------------------------- #
class NoCredential(AuthError):
    code = "NO_TOKEN"
    default_message = "Authentication required"


class InvalidOrExpiredToken(AuthError):
    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class AuthMethodUnavailable(AuthError):
    """Token family is not enabled in the configured auth mode."""

    code = "AUTH_METHOD_UNAVAILABLE"
    default_message = "Authentication method not available"


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class InvalidRefreshToken(AuthError):
    code = "INVALID_REFRESH_TOKEN"
    default_message = "Invalid or expired refresh token"


class InvalidToken(AuthError):
    """Signature, issuer, audience, expiry or structure check failed."""

    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class SigningKeyNotFound(InvalidToken):
    code = "SIGNING_KEY_NOT_FOUND"
    default_message = "Signing key not found"


class UnsupportedKeyType(InvalidToken):
    code = "UNSUPPORTED_KEY_TYPE"
    default_message = "Unsupported key type"


class JwksFetchFailed(InvalidToken):
    code = "JWKS_FETCH_FAILED"
    default_message = "Unable to fetch signing keys"


class InvalidApiKey(AuthError):
    code = "INVALID_API_KEY"
    default_message = "Invalid API key"


class InactiveApiKey(AuthError):
    code = "API_KEY_INACTIVE"
    default_message = "API key is inactive"


class ExpiredApiKey(AuthError):
    code = "API_KEY_EXPIRED"
    default_message = "API key has expired"


class ApiKeyOwnerNotFound(AuthError):
    code = "API_KEY_OWNER_NOT_FOUND"
    default_message = "API key owner not found"


# --------------------------------------------------------------------------- #
# 403: authorization denials
# --------------------------------------------------------------------------- #
class OrgMismatch(AuthError):
    code = "ORG_MISMATCH"
    http_status = 403
    default_message = "API key does not belong to this organization"


class OrgAccessDenied(AuthError):
    code = "ORG_ACCESS_DENIED"
    http_status = 403
    default_message = "Access denied to this organization"


class OrgContextRequired(AuthError):
    code = "ORG_CONTEXT_REQUIRED"
    http_status = 403
    default_message = "Organization context required"


class MissingScope(AuthError):
    code = "INSUFFICIENT_SCOPE"
    http_status = 403
    default_message = "API key missing required scope"


class WorkflowNotAllowed(AuthError):
    code = "WORKFLOW_NOT_ALLOWED"
    http_status = 403
    default_message = "API key not authorized for this workflow"


class InsufficientPermissions(AuthError):
    code = "FORBIDDEN"
    http_status = 403
    default_message = "Insufficient permissions"


class AuthSourceNotAllowed(AuthError):
    code = "AUTH_SOURCE_NOT_ALLOWED"
    http_status = 403
    default_message = "This operation is not available for the current authentication method"


# --------------------------------------------------------------------------- #
# 429: rate limiting
# --------------------------------------------------------------------------- #
class RateLimitExceeded(AuthError):
    code = "RATE_LIMIT_EXCEEDED"
    http_status = 429
    default_message = "Rate limit exceeded"

    def __init__(
        self,
        message: str = "",
        *,
        retry_after: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details={**(details or {}), "retryAfter": retry_after})
        self.retry_after = retry_after
