# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Prometheus metrics utilities (registry-aware, hot-reload safe).

Auth metrics are exposed through accessor functions that return a
*singleton* collector bound to the **current** ``prometheus_client.REGISTRY``.
The cache resets automatically when the active registry changes, so tests
that swap the default registry never hit duplicate-registration errors.

Example:
    get_auth_attempts_total().labels(source="local", outcome="success").inc()
    get_jwks_fetch_latency_seconds().observe(0.042)
"""

from __future__ import annotations

import logging
import threading
from contextlib import suppress
from typing import Final, TypeVar

import prometheus_client as prom
from prometheus_client import Counter, Histogram

_log = logging.getLogger(__name__)

_C = TypeVar("_C", Counter, Histogram)

_BUCKETS: Final[tuple[float, ...]] = (
    0.005,
    0.010,
    0.025,
    0.050,
    0.100,
    0.250,
    0.500,
    1.000,
    2.500,
    5.000,
)

# Cache keyed by metric name within the currently-active registry.
_registry_id: int | None = None
_cache: dict[str, Counter | Histogram] = {}
_lock = threading.RLock()


def _ensure_registry() -> None:
    """Reset caches if the active registry changed."""
    global _registry_id
    with _lock:
        rid = id(prom.REGISTRY)
        if _registry_id != rid:
            _cache.clear()
            _registry_id = rid


def _lookup_existing(name: str) -> Counter | Histogram | None:
    with _lock, suppress(Exception):
        mapping = getattr(prom.REGISTRY, "_names_to_collectors", None)
        if isinstance(mapping, dict):
            col = mapping.get(name)
            if isinstance(col, (Counter, Histogram)):
                return col
    return None


def _get_or_create(
    kind: type[Counter] | type[Histogram],
    name: str,
    help_text: str,
    labelnames: tuple[str, ...] = (),
) -> Counter | Histogram:
    """Get or create a registry-bound collector with stable identity.

    Strategy:
    1. Return from module cache if present for the active registry.
    2. If the registry already has a collector by this name, reuse it.
    3. Otherwise register a new collector; on a duplicate race retry step 2.
    """
    _ensure_registry()
    with _lock:
        cached = _cache.get(name)
        if isinstance(cached, kind):
            return cached

        existing = _lookup_existing(name)
        if isinstance(existing, kind):
            _cache[name] = existing
            return existing

        try:
            if kind is Histogram:
                col: Counter | Histogram = Histogram(
                    name, help_text, labelnames, buckets=_BUCKETS, registry=prom.REGISTRY
                )
            else:
                col = Counter(name, help_text, labelnames, registry=prom.REGISTRY)
        except ValueError as exc:
            if "Duplicated timeseries" in str(exc):
                again = _lookup_existing(name)
                if isinstance(again, kind):
                    _cache[name] = again
                    return again
            _log.exception("Failed to register Prometheus collector %s", name)
            raise
        _cache[name] = col
        return col


def _typed(
    kind: type[_C], name: str, help_text: str, labelnames: tuple[str, ...] = ()
) -> _C:
    col = _get_or_create(kind, name, help_text, labelnames)
    if not isinstance(col, kind):
        raise TypeError(f"collector {name!r} is registered as {type(col).__name__}")
    return col


def get_auth_attempts_total() -> Counter:
    """Counter of authentication attempts by credential source and outcome."""
    return _typed(
        Counter,
        "kvr_auth_attempts",
        "Authentication attempts by credential source and outcome.",
        ("source", "outcome"),
    )


def get_api_key_rejections_total() -> Counter:
    """Counter of rejected API keys by reason code."""
    return _typed(
        Counter,
        "kvr_api_key_rejections",
        "API key rejections by reason code.",
        ("reason",),
    )


def get_jwks_fetch_total() -> Counter:
    """Counter of JWKS fetches by outcome (ok, error, stale)."""
    return _typed(
        Counter,
        "kvr_jwks_fetch",
        "JWKS document fetches by outcome.",
        ("outcome",),
    )


def get_jwks_fetch_latency_seconds() -> Histogram:
    return _typed(
        Histogram,
        "kvr_jwks_fetch_latency_seconds",
        "Latency of JWKS document fetches.",
    )


def get_readyz_db_latency_seconds() -> Histogram:
    """Histogram of readiness DB probe latency (seconds)."""
    return _typed(
        Histogram,
        "readyz_db_latency_seconds",
        "Latency of readiness DB probe in seconds.",
    )
