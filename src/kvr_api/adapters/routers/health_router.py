# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Health endpoints (Adapters Layer).

Purpose:
    Expose health, readiness and liveness signals for orchestrators and load
    balancers. ``/health`` also reports which authentication methods are active.

Design:
    * The DB check is injected through ``probe_provider`` so tests can override
      it by identity; ``use_cache=False`` honors late overrides.
    * Readiness latencies are recorded to Prometheus.
    * Liveness performs no I/O.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Annotated, Literal, Protocol

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import text

from kvr_api.adapters.schemas.http.base import BaseHTTPSchema
from kvr_api.infrastructure.database.session import get_engine
from kvr_api.infrastructure.logging.logger import get_json_logger
from kvr_api.infrastructure.observability.metrics import get_readyz_db_latency_seconds

logger = get_json_logger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseHTTPSchema):
    status: Literal["healthy", "unhealthy"]
    service: str
    version: str
    timestamp: datetime
    auth_mode: str
    database: Literal["connected", "disconnected"]
    error: str | None = None


class ReadinessResponse(BaseHTTPSchema):
    ready: bool
    error: str | None = None


class LivenessResponse(BaseHTTPSchema):
    live: Literal[True] = True


class HealthProbe(Protocol):
    """Minimal, non-destructive dependency check returning ``(is_ok, detail)``."""

    async def db(self) -> tuple[bool, str | None]: ...


class DatabaseProbe:
    """Runs ``SELECT 1`` against the application engine."""

    async def db(self) -> tuple[bool, str | None]:
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            return False, type(exc).__name__
        return True, None


class ProbeProvider:
    """Dependency token object for health routes (override by identity in tests)."""

    def __call__(self) -> HealthProbe:
        return DatabaseProbe()


probe_provider = ProbeProvider()

ProbeDep = Annotated[HealthProbe, Depends(probe_provider, use_cache=False)]


async def _timed_db_check(probe: HealthProbe) -> tuple[bool, str | None]:
    start = time.perf_counter()
    ok, detail = await probe.db()
    get_readyz_db_latency_seconds().observe(time.perf_counter() - start)
    return ok, detail


@router.get("", summary="Service health", response_model=HealthResponse)
async def health(request: Request, response: Response, probe: ProbeDep) -> HealthResponse:
    settings = request.app.state.container.settings
    ok, detail = await _timed_db_check(probe)
    if not ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning("health.db_unavailable", extra={"extra": {"detail": detail}})
    return HealthResponse(
        status="healthy" if ok else "unhealthy",
        service=settings.service_name,
        version=settings.service_version,
        timestamp=datetime.now(tz=UTC),
        auth_mode=settings.auth_mode_description(),
        database="connected" if ok else "disconnected",
        error=detail,
    )


@router.get(
    "/ready",
    summary="Readiness",
    response_model=ReadinessResponse,
    responses={503: {"description": "Database unavailable", "model": ReadinessResponse}},
)
async def readiness(response: Response, probe: ProbeDep) -> ReadinessResponse:
    ok, detail = await _timed_db_check(probe)
    if not ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(ready=ok, error=detail)


@router.get("/live", summary="Liveness", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    return LivenessResponse()
