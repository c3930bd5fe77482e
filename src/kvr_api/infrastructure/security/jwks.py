# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""JWKS signing-key resolution for external (TAH) tokens.

Purpose:
    Resolve the PEM public key for a token's ``kid`` from the identity
    provider's JWKS document.

Design:
    * ``JwksCache`` is a plain object owned by the composition root and
      injected into the resolver, with an injectable clock.
    * A fresh cache is searched without network I/O. An expired or empty cache
      triggers a fetch with a short timeout.
    * If the fetch fails and a stale document exists, the stale keys are used
      (logged as a warning). Without any cached document the fetch error
      propagates as ``JwksFetchFailed``.
    * A ``kid`` missing from a *fresh* document forces one refresh (key
      rotation), rate limited by ``min_refresh_seconds``.
    * A static PEM override short-circuits everything.
    * Concurrent refreshes are last-writer-wins; no lock is taken.

Layer:
    infrastructure/security
"""

from __future__ import annotations

import base64
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicNumbers
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from jose.utils import base64url_decode

from kvr_api.domain.exceptions.auth import (
    InvalidToken,
    JwksFetchFailed,
    SigningKeyNotFound,
    UnsupportedKeyType,
)
from kvr_api.infrastructure.logging.logger import get_json_logger
from kvr_api.infrastructure.observability.metrics import (
    get_jwks_fetch_latency_seconds,
    get_jwks_fetch_total,
)

__all__ = ["JwksCache", "JwksFetcher", "JwksKeyResolver", "jwk_to_pem"]

logger = get_json_logger(__name__)

Clock = Callable[[], float]
JwksFetcher = Callable[[str], Awaitable[Mapping[str, Any]]]


@dataclass(frozen=True)
class CachedJwks:
    """In-memory JWKS cache entry."""

    keys: tuple[Mapping[str, Any], ...]
    fetched_at: float
    expires_at: float


class JwksCache:
    """Holds the last fetched JWKS document and its expiry.

    Args:
        ttl_seconds: Freshness window of a fetched document.
        clock: Monotonic seconds source; injectable for tests.
    """

    def __init__(self, ttl_seconds: int, clock: Clock = time.monotonic) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: CachedJwks | None = None

    @property
    def entry(self) -> CachedJwks | None:
        return self._entry

    def now(self) -> float:
        return self._clock()

    def is_fresh(self) -> bool:
        return self._entry is not None and self._entry.expires_at > self._clock()

    def store(self, keys: Sequence[Mapping[str, Any]]) -> CachedJwks:
        now = self._clock()
        self._entry = CachedJwks(
            keys=tuple(keys), fetched_at=now, expires_at=now + self._ttl_seconds
        )
        return self._entry

    def clear(self) -> None:
        self._entry = None


def _b64url_int(value: str) -> int:
    return int.from_bytes(base64url_decode(value.encode("ascii")), "big")


def jwk_to_pem(key: Mapping[str, Any]) -> str:
    """Convert a JWK to a PEM-encoded public key.

    Supported forms are an ``x5c`` certificate chain (first certificate used)
    and a raw RSA key (``n``/``e``).

    Raises:
        UnsupportedKeyType: If the JWK has neither form.
        InvalidToken: If the key material is malformed.
    """
    x5c = key.get("x5c")
    try:
        if isinstance(x5c, list) and x5c:
            cert = x509.load_der_x509_certificate(base64.b64decode(x5c[0]))
            public_key: Any = cert.public_key()
        elif key.get("kty") == "RSA" and key.get("n") and key.get("e"):
            public_key = RSAPublicNumbers(
                e=_b64url_int(str(key["e"])), n=_b64url_int(str(key["n"]))
            ).public_key()
        else:
            raise UnsupportedKeyType()
    except UnsupportedKeyType:
        raise
    except (ValueError, TypeError) as exc:
        raise InvalidToken("Malformed signing key") from exc

    pem: bytes = public_key.public_bytes(Encoding.PEM, PublicFormat.SubjectPublicKeyInfo)
    return pem.decode("ascii")


def _find_key(keys: Sequence[Mapping[str, Any]], kid: str | None) -> Mapping[str, Any] | None:
    if kid is None:
        # Tokens without a kid are only resolvable against a single-key document.
        return keys[0] if len(keys) == 1 else None
    for key in keys:
        if key.get("kid") == kid:
            return key
    return None


class JwksKeyResolver:
    """Resolve PEM signing keys by ``kid`` with caching and stale fallback.

    Args:
        jwks_url: JWKS endpoint of the identity provider.
        cache: Shared cache instance.
        static_key: Optional PEM override; when set, JWKS is never fetched.
        timeout: HTTP timeout for fetches, in seconds.
        min_refresh_seconds: Minimum spacing of forced (unknown-kid) refreshes.
        http_client: Optional shared ``httpx.AsyncClient``.
        fetcher: Optional replacement for the HTTP fetch (tests).
    """

    def __init__(
        self,
        *,
        jwks_url: str,
        cache: JwksCache,
        static_key: str | None = None,
        timeout: float = 5.0,
        min_refresh_seconds: int = 30,
        http_client: httpx.AsyncClient | None = None,
        fetcher: JwksFetcher | None = None,
    ) -> None:
        self._jwks_url = jwks_url
        self._cache = cache
        self._static_key = static_key
        self._timeout = timeout
        self._min_refresh_seconds = min_refresh_seconds
        self._http_client = http_client
        self._fetcher: JwksFetcher = fetcher or self._http_fetch
        self._last_forced_refresh: float | None = None

    def use_http_client(self, client: httpx.AsyncClient | None) -> None:
        """Route fetches through a shared client owned by the application lifespan."""
        self._http_client = client

    async def resolve_signing_key(self, kid: str | None) -> str:
        """Return the PEM public key for ``kid``.

        Raises:
            JwksFetchFailed: No cached document and the fetch failed.
            SigningKeyNotFound: ``kid`` is not in the (possibly refreshed) document.
            UnsupportedKeyType: The matching JWK cannot be converted.
        """
        if self._static_key:
            return self._static_key

        entry = self._cache.entry
        if entry is not None and self._cache.is_fresh():
            key = _find_key(entry.keys, kid)
            if key is None and self._may_force_refresh():
                logger.info("jwks.unknown_kid_refresh", extra={"extra": {"kid": kid}})
                entry = await self._refresh(stale=entry)
                key = _find_key(entry.keys, kid)
        else:
            entry = await self._refresh(stale=entry)
            key = _find_key(entry.keys, kid)

        if key is None:
            raise SigningKeyNotFound(details={"kid": kid})
        return jwk_to_pem(key)

    def _may_force_refresh(self) -> bool:
        now = self._cache.now()
        if (
            self._last_forced_refresh is not None
            and now - self._last_forced_refresh < self._min_refresh_seconds
        ):
            return False
        self._last_forced_refresh = now
        return True

    async def _refresh(self, *, stale: CachedJwks | None) -> CachedJwks:
        started = time.perf_counter()
        try:
            document = await self._fetcher(self._jwks_url)
            keys = document.get("keys")
            if not isinstance(keys, list):
                raise ValueError("JWKS document has no 'keys' list")
        except (httpx.HTTPError, ValueError) as exc:
            if stale is not None:
                get_jwks_fetch_total().labels(outcome="stale").inc()
                logger.warning(
                    "jwks.stale_cache_used",
                    extra={"extra": {"jwks_url": self._jwks_url, "error": type(exc).__name__}},
                )
                return stale
            get_jwks_fetch_total().labels(outcome="error").inc()
            logger.error(
                "jwks.fetch_failed",
                extra={"extra": {"jwks_url": self._jwks_url, "error": type(exc).__name__}},
            )
            raise JwksFetchFailed(details={"jwks_url": self._jwks_url}) from exc
        finally:
            get_jwks_fetch_latency_seconds().observe(time.perf_counter() - started)

        entry = self._cache.store([k for k in keys if isinstance(k, dict)])
        get_jwks_fetch_total().labels(outcome="ok").inc()
        logger.info(
            "jwks.refreshed",
            extra={"extra": {"key_count": len(entry.keys), "jwks_url": self._jwks_url}},
        )
        return entry

    async def _http_fetch(self, url: str) -> Mapping[str, Any]:
        if self._http_client is not None:
            resp = await self._http_client.get(url, timeout=self._timeout)
            resp.raise_for_status()
            payload: Any = resp.json()
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError("JWKS document is not a JSON object")
        return payload
