# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Password hashing for local accounts (bcrypt)."""

from __future__ import annotations

import bcrypt

__all__ = ["hash_password", "verify_password"]

_ROUNDS = 10


def hash_password(password: str) -> str:
    """Return a bcrypt hash of ``password``."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: str | None) -> bool:
    """Verify ``password`` against a stored bcrypt hash.

    Returns False for identities without a local password (SSO-only shadows)
    and for malformed hashes.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
