# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Prometheus scrape endpoint (``/metrics``).

Collectors are created lazily; the auth counters and the readiness histogram
are touched here so their series exist on the very first scrape.

Layer:
    adapters/routers
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kvr_api.infrastructure.logging.logger import get_json_logger
from kvr_api.infrastructure.observability.metrics import (
    get_api_key_rejections_total,
    get_auth_attempts_total,
    get_jwks_fetch_latency_seconds,
    get_jwks_fetch_total,
    get_readyz_db_latency_seconds,
)

logger = get_json_logger(__name__)
router = APIRouter()

_WARM: tuple[Callable[[], object], ...] = (
    get_auth_attempts_total,
    get_api_key_rejections_total,
    get_jwks_fetch_total,
    get_jwks_fetch_latency_seconds,
    get_readyz_db_latency_seconds,
)


@router.get("/metrics", include_in_schema=False)
async def metrics_probe() -> Response:
    """Expose Prometheus metrics in text format."""
    for getter in _WARM:
        try:
            getter()
        except ValueError as exc:
            logger.debug(
                "metrics_router: failed warming collector",
                extra={"extra": {"metric": getter.__name__, "error": str(exc)}},
            )
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
