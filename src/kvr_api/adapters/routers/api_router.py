# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""API Router Aggregator (Adapters Layer).

Purpose:
    Compose and expose the top-level `router` that includes all feature routers.
    This is the canonical place to register resource-specific routers into the app.

Responsibilities:
    • Mount health endpoints under `/api/v1/health`.
    • Mount session and profile endpoints under `/api/v1/auth`.
    • Mount API key management under `/api/v1/api-keys`.
    • Mount the feature manifest under `/api/v1/app-features`.
    • Mount guarded probe endpoints under `/api/v1/protected`.

Layer:
    adapters/routers
"""

from __future__ import annotations

from fastapi import APIRouter

from kvr_api.adapters.routers.api_keys_router import router as api_keys_router
from kvr_api.adapters.routers.app_features_router import router as app_features_router
from kvr_api.adapters.routers.auth_router import router as auth_router
from kvr_api.adapters.routers.health_router import router as health_router
from kvr_api.adapters.routers.protected_router import router as protected_router

API_PREFIX = "/api/v1"

router = APIRouter(prefix=API_PREFIX)

router.include_router(health_router)
router.include_router(auth_router)
router.include_router(api_keys_router)
router.include_router(app_features_router)
router.include_router(protected_router)
