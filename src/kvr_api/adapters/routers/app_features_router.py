# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""App Features Router: ``/api/v1/app-features``.

Publishes the feature manifest the external identity provider (TAH) syncs to
define per-organization permissions. Permission strings granted by TAH take
the form ``<feature id>:<action>`` and are checked by ``check_permission``.
"""

from __future__ import annotations

from collections import Counter
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from kvr_api.adapters.schemas.http import SuccessEnvelope
from kvr_api.adapters.schemas.http.base import BaseHTTPSchema
from kvr_api.domain.entities.principal import Principal
from kvr_api.infrastructure.auth.dependencies import require_principal

router = APIRouter(prefix="/app-features", tags=["App Features"])

APP_ID = "kvr"
APP_NAME = "KeyVault Registry"
APP_DESCRIPTION = "Centralized management of integration resources and API keys for workflows"


class FeatureView(BaseHTTPSchema):
    id: str
    name: str
    description: str
    module: str
    path: str
    icon: str
    actions: list[str]
    is_public: bool = False
    requires_org: bool = True


class ModuleView(BaseHTTPSchema):
    id: str
    name: str
    feature_count: int


class ManifestStats(BaseHTTPSchema):
    total_features: int
    total_modules: int
    public_features: int


class ManifestView(BaseHTTPSchema):
    app_id: str
    app_name: str
    version: str
    description: str
    modules: list[ModuleView]
    features: list[FeatureView]
    stats: ManifestStats


FEATURES: tuple[FeatureView, ...] = (
    FeatureView(
        id="kvr.dashboard",
        name="Dashboard",
        description="Overview of resources, API keys, and system health",
        module="core",
        path="/dashboard",
        icon="LayoutDashboard",
        actions=["read"],
    ),
    FeatureView(
        id="kvr.resources",
        name="Resources",
        description="Manage integration resources (APIs, databases, messaging systems)",
        module="resources",
        path="/resources",
        icon="Database",
        actions=["read", "create", "update", "delete", "execute"],
    ),
    FeatureView(
        id="kvr.resources.test",
        name="Test Resources",
        description="Test connection and health check for resources",
        module="resources",
        path="/resources/:id/test",
        icon="PlayCircle",
        actions=["execute"],
    ),
    FeatureView(
        id="kvr.resources.promote",
        name="Promote Resources",
        description="Promote resources from DEV to PRD environment",
        module="resources",
        path="/resources/:id/promote",
        icon="ArrowUpCircle",
        actions=["execute"],
    ),
    FeatureView(
        id="kvr.resources.approve",
        name="Approve Promotions",
        description="Approve or reject resource promotion requests",
        module="resources",
        path="/resources/:id/approve",
        icon="CheckCircle",
        actions=["execute"],
    ),
    FeatureView(
        id="kvr.apikeys",
        name="API Keys",
        description="Manage API keys for external integrations",
        module="apikeys",
        path="/api-keys",
        icon="Key",
        actions=["read", "create", "update", "delete"],
    ),
    FeatureView(
        id="kvr.apikeys.regenerate",
        name="Regenerate API Keys",
        description="Regenerate API key secrets",
        module="apikeys",
        path="/api-keys/:id/regenerate",
        icon="RefreshCw",
        actions=["execute"],
    ),
)


def build_manifest(version: str) -> ManifestView:
    """Group features by module, preserving first-seen module order."""
    counts = Counter(f.module for f in FEATURES)
    modules = [
        ModuleView(id=module, name=module.capitalize(), feature_count=count)
        for module, count in counts.items()
    ]
    return ManifestView(
        app_id=APP_ID,
        app_name=APP_NAME,
        version=version,
        description=APP_DESCRIPTION,
        modules=modules,
        features=list(FEATURES),
        stats=ManifestStats(
            total_features=len(FEATURES),
            total_modules=len(modules),
            public_features=sum(1 for f in FEATURES if f.is_public),
        ),
    )


@router.get("/manifest", summary="Feature manifest (public)", response_model=ManifestView)
async def manifest(request: Request) -> ManifestView:
    return build_manifest(request.app.version)


@router.get(
    "",
    summary="List features",
    response_model=SuccessEnvelope[list[FeatureView]],
)
async def list_features(
    _principal: Annotated[Principal, Depends(require_principal)],
) -> SuccessEnvelope[list[FeatureView]]:
    return SuccessEnvelope[list[FeatureView]](data=list(FEATURES))
