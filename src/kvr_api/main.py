# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Application Entry (Adapters Bootstrap)

Synopsis:
    FastAPI bootstrap that wires middleware, exception handlers, the auth
    container and all routers. Provides an application factory (`create_app`)
    and a module-level eager app (`app`) for tooling.

Design:
    • Bootstrap only (no business logic): routers + middleware + container.
    • The auth container is built once per app from Settings and stored on
      ``app.state.container``.
    • Lifespan initializes DB/HTTP and tears them down safely, draining
      pending API key usage updates first.
    • Root JSON logging is configured at import time.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from kvr_api.adapters.routers import api_router, metrics_router
from kvr_api.config.settings import Settings, get_settings
from kvr_api.dependencies.core.bootstrap import bootstrap
from kvr_api.dependencies.core.container import AuthContainer, build_container
from kvr_api.domain.exceptions.base import DomainError
from kvr_api.infrastructure.http.errors import (
    handle_domain_error,
    handle_http_exception,
    handle_unhandled_exception,
    handle_validation_error,
)
from kvr_api.infrastructure.logging.logger import (
    configure_root_logging,
    get_json_logger,
)
from kvr_api.infrastructure.middleware.access_log import AccessLogMiddleware
from kvr_api.infrastructure.middleware.request_context import RequestContextMiddleware

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
configure_root_logging()
logger = get_json_logger(__name__)


# -----------------------------------------------------------------------------
# Stable generator
# -----------------------------------------------------------------------------
def _stable_operation_id(route: APIRoute) -> str:
    """Deterministic operationId, e.g. ``get__api_v1_auth_me``.

    Methods are sorted and path parameter braces removed.
    """
    methods = ",".join(sorted(route.methods or []))
    path = route.path_format.replace("/", "_").replace("-", "_")
    path = path.replace("{", "").replace("}", "")
    return f"{methods.lower()}_{path.lower()}"


# -----------------------------------------------------------------------------
# Lifespan
# -----------------------------------------------------------------------------
@asynccontextmanager
async def runtime_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Run the app inside :func:`bootstrap` for its auth container."""
    container: AuthContainer = app.state.container
    async with bootstrap(container) as state:
        app.state.settings = state.settings
        app.state.http_client = state.http_client
        yield


# -----------------------------------------------------------------------------
# Middleware & CORS
# -----------------------------------------------------------------------------
def _attach_middlewares(app: FastAPI) -> None:
    """Attach core middleware.

    Starlette runs the last-added middleware first, so RequestContextMiddleware
    (added last) wraps AccessLogMiddleware and the request context is open before
    the access log entry is written.
    """
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestContextMiddleware)


def _attach_cors(app: FastAPI, settings: Settings) -> None:
    """Attach CORS middleware based on settings.

    Credential headers used by the auth layer are explicitly allowed.
    """
    allow_origins = settings.cors_allow_origins
    if not allow_origins:
        return
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials="*" not in allow_origins,
        allow_methods=["*"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-API-Key",
            "X-Organization-Id",
            "X-Request-ID",
        ],
        expose_headers=["X-Request-ID", "Retry-After"],
    )


def _patch_exception_handlers(app: FastAPI) -> None:
    """Register structured handlers for domain, HTTP, validation and unexpected errors."""

    async def _domain_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        if not isinstance(exc, DomainError):
            raise exc
        return await handle_domain_error(request, exc)

    async def _http_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        if not isinstance(exc, HTTPException):
            raise exc
        return await handle_http_exception(request, exc)

    async def _validation_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        if not isinstance(exc, RequestValidationError):
            raise exc
        return await handle_validation_error(request, exc)

    async def _unhandled_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        return await handle_unhandled_exception(request, exc)

    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------
def create_app(
    settings: Settings | None = None, *, container: AuthContainer | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override; defaults to :func:`get_settings`.
        container: Prebuilt auth container (tests); built from settings otherwise.

    Returns:
        FastAPI: Fully configured application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="KeyVault Registry API",
        version=settings.service_version,
        description="Dual-mode authentication core: local sessions, SSO tokens and API keys.",
        lifespan=runtime_lifespan,
        generate_unique_id_function=_stable_operation_id,
    )
    app.state.container = container or build_container(settings)

    _patch_exception_handlers(app)
    _attach_middlewares(app)
    _attach_cors(app, settings)

    app.include_router(api_router)
    app.include_router(metrics_router)

    logger.info(
        "service_startup",
        extra={
            "extra": {
                "service": settings.service_name,
                "env": settings.environment.value,
                "version": settings.service_version,
                "auth_mode": settings.auth_mode.value,
            }
        },
    )
    return app


# Eager app for tools (uvicorn kvr_api.main:app).
app: FastAPI = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run(
        "kvr_api.main:create_app",
        factory=True,
        host="127.0.0.1",
        port=int(os.getenv("PORT", "8080")),
        reload=True,
    )
