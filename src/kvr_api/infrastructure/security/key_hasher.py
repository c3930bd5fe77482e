# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""API key generation and hashing.

API keys are high-entropy random strings, so they are stored as an unsalted
SHA-256 hex digest: the digest doubles as the lookup key. The display prefix
(first 12 characters) is stored alongside for UI identification only.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Iterable

__all__ = [
    "API_KEY_PREFIX",
    "DISPLAY_PREFIX_LENGTH",
    "generate_api_key",
    "has_recognized_prefix",
    "hash_api_key",
    "key_prefix",
]

API_KEY_PREFIX = "kvr_"
DISPLAY_PREFIX_LENGTH = 12


def hash_api_key(secret: str) -> str:
    """Return the lowercase SHA-256 hex digest of ``secret``."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def key_prefix(secret: str) -> str:
    """Return the display prefix of a raw key."""
    return secret[:DISPLAY_PREFIX_LENGTH]


def generate_api_key() -> str:
    """Generate a new raw API key: ``kvr_`` followed by 64 hex characters."""
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


def has_recognized_prefix(candidate: str, prefixes: Iterable[str]) -> bool:
    return any(candidate.startswith(p) for p in prefixes)
