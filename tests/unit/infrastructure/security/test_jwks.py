from __future__ import annotations

import base64
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
import respx
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from fixtures.auth_testkit import TAH_JWKS_URL, MonotonicClock, RsaSigner, make_rsa_signer
from kvr_api.domain.exceptions.auth import (
    InvalidToken,
    JwksFetchFailed,
    SigningKeyNotFound,
    UnsupportedKeyType,
)
from kvr_api.infrastructure.security.jwks import JwksCache, JwksKeyResolver, jwk_to_pem


class FakeFetcher:
    """Serves queued JWKS documents; an exception in the queue is raised instead."""

    def __init__(self, *responses: Mapping[str, Any] | Exception) -> None:
        self._responses = list(responses)
        self.calls = 0

    async def __call__(self, url: str) -> Mapping[str, Any]:
        self.calls += 1
        response = self._responses[0] if len(self._responses) == 1 else self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _resolver(
    fetcher: FakeFetcher,
    clock: MonotonicClock,
    *,
    ttl: int = 600,
    min_refresh: int = 30,
    static_key: str | None = None,
) -> JwksKeyResolver:
    return JwksKeyResolver(
        jwks_url=TAH_JWKS_URL,
        cache=JwksCache(ttl_seconds=ttl, clock=clock),
        static_key=static_key,
        min_refresh_seconds=min_refresh,
        fetcher=fetcher,
    )


@pytest.fixture
def mono() -> MonotonicClock:
    return MonotonicClock()


@pytest.mark.anyio
async def test_fresh_cache_is_served_without_refetch(
    signer: RsaSigner, mono: MonotonicClock
) -> None:
    fetcher = FakeFetcher({"keys": [signer.jwk]})
    resolver = _resolver(fetcher, mono)

    first = await resolver.resolve_signing_key("key-1")
    mono.advance(599)
    second = await resolver.resolve_signing_key("key-1")

    assert first == second == signer.public_pem
    assert fetcher.calls == 1


@pytest.mark.anyio
async def test_expired_cache_is_refetched(signer: RsaSigner, mono: MonotonicClock) -> None:
    fetcher = FakeFetcher({"keys": [signer.jwk]})
    resolver = _resolver(fetcher, mono)

    await resolver.resolve_signing_key("key-1")
    mono.advance(601)
    await resolver.resolve_signing_key("key-1")

    assert fetcher.calls == 2


@pytest.mark.anyio
async def test_stale_keys_are_used_when_refresh_fails(
    signer: RsaSigner, mono: MonotonicClock
) -> None:
    fetcher = FakeFetcher({"keys": [signer.jwk]}, httpx.ConnectError("down"))
    resolver = _resolver(fetcher, mono)

    await resolver.resolve_signing_key("key-1")
    mono.advance(3600)

    assert await resolver.resolve_signing_key("key-1") == signer.public_pem
    assert fetcher.calls == 2


@pytest.mark.anyio
async def test_fetch_failure_without_cache_raises(mono: MonotonicClock) -> None:
    resolver = _resolver(FakeFetcher(httpx.ConnectError("down")), mono)

    with pytest.raises(JwksFetchFailed):
        await resolver.resolve_signing_key("key-1")


@pytest.mark.anyio
async def test_document_without_keys_counts_as_fetch_failure(mono: MonotonicClock) -> None:
    resolver = _resolver(FakeFetcher({"not_keys": []}), mono)

    with pytest.raises(JwksFetchFailed):
        await resolver.resolve_signing_key("key-1")


@pytest.mark.anyio
async def test_unknown_kid_forces_one_refresh_for_rotation(
    signer: RsaSigner, mono: MonotonicClock
) -> None:
    rotated = make_rsa_signer("key-2")
    fetcher = FakeFetcher({"keys": [signer.jwk]}, {"keys": [signer.jwk, rotated.jwk]})
    resolver = _resolver(fetcher, mono)

    await resolver.resolve_signing_key("key-1")
    pem = await resolver.resolve_signing_key("key-2")

    assert pem == rotated.public_pem
    assert fetcher.calls == 2


@pytest.mark.anyio
async def test_forced_refreshes_are_rate_limited(signer: RsaSigner, mono: MonotonicClock) -> None:
    fetcher = FakeFetcher({"keys": [signer.jwk]})
    resolver = _resolver(fetcher, mono, min_refresh=30)

    await resolver.resolve_signing_key("key-1")
    with pytest.raises(SigningKeyNotFound):
        await resolver.resolve_signing_key("missing-a")
    with pytest.raises(SigningKeyNotFound):
        await resolver.resolve_signing_key("missing-b")
    assert fetcher.calls == 2

    mono.advance(31)
    with pytest.raises(SigningKeyNotFound):
        await resolver.resolve_signing_key("missing-c")
    assert fetcher.calls == 3


@pytest.mark.anyio
async def test_kidless_token_needs_single_key_document(
    signer: RsaSigner, mono: MonotonicClock
) -> None:
    single = _resolver(FakeFetcher({"keys": [signer.jwk]}), mono)
    assert await single.resolve_signing_key(None) == signer.public_pem

    other = make_rsa_signer("key-9")
    several = _resolver(FakeFetcher({"keys": [signer.jwk, other.jwk]}), MonotonicClock())
    with pytest.raises(SigningKeyNotFound):
        await several.resolve_signing_key(None)


@pytest.mark.anyio
async def test_static_key_short_circuits_fetching(mono: MonotonicClock) -> None:
    fetcher = FakeFetcher(httpx.ConnectError("never called"))
    resolver = _resolver(fetcher, mono, static_key="-----BEGIN PUBLIC KEY-----\nabc\n")

    assert (await resolver.resolve_signing_key("any")).startswith("-----BEGIN PUBLIC KEY-----")
    assert fetcher.calls == 0


@pytest.mark.anyio
async def test_http_fetch_uses_configured_url(signer: RsaSigner, mono: MonotonicClock) -> None:
    resolver = JwksKeyResolver(jwks_url=TAH_JWKS_URL, cache=JwksCache(600, clock=mono))

    with respx.mock(assert_all_called=True) as router:
        route = router.get(TAH_JWKS_URL).mock(
            return_value=httpx.Response(200, json={"keys": [signer.jwk]})
        )
        assert await resolver.resolve_signing_key("key-1") == signer.public_pem

    assert route.call_count == 1


@pytest.mark.anyio
async def test_http_error_status_without_cache_raises(mono: MonotonicClock) -> None:
    resolver = JwksKeyResolver(jwks_url=TAH_JWKS_URL, cache=JwksCache(600, clock=mono))

    with respx.mock() as router:
        router.get(TAH_JWKS_URL).mock(return_value=httpx.Response(503))
        with pytest.raises(JwksFetchFailed):
            await resolver.resolve_signing_key("key-1")


# ---------------------------------------------------------------------------
# JWK -> PEM
# ---------------------------------------------------------------------------
def _self_signed_der(signer: RsaSigner) -> bytes:
    private_key = serialization.load_pem_private_key(signer.private_pem.encode(), password=None)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "tah-test")])
    now = datetime.now(tz=UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())  # type: ignore[arg-type]
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(private_key, hashes.SHA256())  # type: ignore[arg-type]
    )
    return cert.public_bytes(serialization.Encoding.DER)


def test_rsa_jwk_converts_to_pem(signer: RsaSigner) -> None:
    assert jwk_to_pem(signer.jwk) == signer.public_pem


def test_x5c_certificate_takes_precedence(signer: RsaSigner) -> None:
    der = _self_signed_der(signer)
    jwk = {"kid": "cert", "x5c": [base64.b64encode(der).decode("ascii")], "kty": "EC"}

    assert jwk_to_pem(jwk) == signer.public_pem


def test_unsupported_key_type_is_rejected() -> None:
    with pytest.raises(UnsupportedKeyType):
        jwk_to_pem({"kid": "ec", "kty": "EC", "crv": "P-256", "x": "abc", "y": "def"})


def test_malformed_certificate_is_invalid_token() -> None:
    bogus = base64.b64encode(b"not-a-certificate").decode("ascii")
    with pytest.raises(InvalidToken):
        jwk_to_pem({"kid": "bad", "x5c": [bogus]})
