from __future__ import annotations

import jwt
import pytest

from fixtures.auth_testkit import TAH_AUDIENCE, TAH_ISSUER
from kvr_api.infrastructure.security.token_classifier import TokenClassifier


@pytest.fixture
def classifier() -> TokenClassifier:
    return TokenClassifier(issuer=TAH_ISSUER, audience=TAH_AUDIENCE)


def _unsigned(claims: dict[str, object]) -> str:
    # Classification never verifies signatures, so any key will do.
    return jwt.encode(claims, "irrelevant-signing-key-for-tests", algorithm="HS256")


def test_matching_issuer_is_external(classifier: TokenClassifier) -> None:
    assert classifier.looks_external(_unsigned({"iss": TAH_ISSUER}))


def test_matching_audience_string_is_external(classifier: TokenClassifier) -> None:
    assert classifier.looks_external(_unsigned({"iss": "someone", "aud": TAH_AUDIENCE}))


def test_matching_audience_list_is_external(classifier: TokenClassifier) -> None:
    assert classifier.looks_external(_unsigned({"aud": ["billing", TAH_AUDIENCE]}))


def test_local_shaped_token_is_not_external(classifier: TokenClassifier) -> None:
    assert not classifier.looks_external(_unsigned({"iss": "kvr", "userId": "u-1"}))


@pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c", "kvr_0123"])
def test_undecodable_tokens_classify_as_local(classifier: TokenClassifier, garbage: str) -> None:
    assert classifier.looks_external(garbage) is False
