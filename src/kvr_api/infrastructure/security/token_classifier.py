# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Route bearer tokens to the right validator without verifying them.

The classification only decides *which* validator runs; the validator still
performs full signature and claim checks, so reading unverified claims here is
safe.
"""

from __future__ import annotations

from jose import jwt

__all__ = ["TokenClassifier"]


class TokenClassifier:
    """Decide whether a token was issued by the external identity provider."""

    def __init__(self, *, issuer: str, audience: str) -> None:
        self._issuer = issuer
        self._audience = audience

    def looks_external(self, token: str) -> bool:
        """True when the unverified ``iss`` or ``aud`` matches the provider.

        Never raises: tokens that cannot be decoded are classified local.
        """
        try:
            claims = jwt.get_unverified_claims(token)
        except Exception:
            return False
        if not isinstance(claims, dict):
            return False

        if self._issuer and claims.get("iss") == self._issuer:
            return True
        aud = claims.get("aud")
        if isinstance(aud, str):
            return aud == self._audience
        if isinstance(aud, list):
            return self._audience in aud
        return False
