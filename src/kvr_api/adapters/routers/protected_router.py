# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Protected Router: ``/api/v1/protected``.

Thin gated surface that puts each authentication dependency and
authorization guard behind a route. Resource persistence lives in other
services; these handlers only report what the caller was allowed to do.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from kvr_api.adapters.schemas.http import ERROR_RESPONSES, SuccessEnvelope
from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.enums.auth import OrgRole, Role
from kvr_api.infrastructure.auth.dependencies import (
    authenticate,
    optional_principal,
    require_principal,
)
from kvr_api.infrastructure.auth.guards import (
    check_permission,
    check_workflow_access,
    require_org_context,
    require_role,
    require_scope,
)

router = APIRouter(prefix="/protected", tags=["Protected"])

_RESPONSES = {401: ERROR_RESPONSES[401], 403: ERROR_RESPONSES[403], 429: ERROR_RESPONSES[429]}


def _context(principal: Principal) -> dict[str, Any]:
    return {
        "userId": principal.user_id,
        "authSource": principal.auth_source.value,
        "orgId": principal.org_id,
        "orgRole": principal.org_role,
        "roles": list(principal.roles),
    }


@router.get("/ping", summary="Authentication check", responses=_RESPONSES)
async def ping(principal: Annotated[Principal, Depends(require_principal)]) -> dict[str, Any]:
    return {"status": "ok", "authSource": principal.auth_source.value}


@router.get("/whoami", summary="Principal if authenticated, anonymous otherwise")
async def whoami(
    principal: Annotated[Principal | None, Depends(optional_principal)],
) -> dict[str, Any]:
    if principal is None:
        return {"authenticated": False}
    return {"authenticated": True, **_context(principal)}


@router.get(
    "/resources",
    summary="List resources",
    response_model=SuccessEnvelope[dict[str, Any]],
    responses=_RESPONSES,
)
async def list_resources(
    principal: Annotated[Principal, Depends(authenticate(scope="resources:read"))],
) -> SuccessEnvelope[dict[str, Any]]:
    return SuccessEnvelope[dict[str, Any]](data={"items": [], "context": _context(principal)})


@router.post(
    "/resources",
    summary="Create a resource",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[dict[str, Any]],
    responses=_RESPONSES,
    dependencies=[
        Depends(require_scope("resources:write")),
        Depends(require_org_context(OrgRole.MEMBER)),
    ],
)
async def create_resource(
    body: dict[str, Any],
    principal: Annotated[Principal, Depends(check_permission("kvr.resources", "create"))],
) -> SuccessEnvelope[dict[str, Any]]:
    return SuccessEnvelope[dict[str, Any]](
        data={"accepted": True, "resource": body, "context": _context(principal)}
    )


@router.get(
    "/workflows/{workflow_id}",
    summary="Access a workflow",
    responses=_RESPONSES,
    dependencies=[Depends(require_scope("resources:read"))],
)
async def get_workflow(
    workflow_id: str,
    principal: Annotated[Principal, Depends(check_workflow_access("workflow_id"))],
) -> dict[str, Any]:
    return {"success": True, "workflowId": workflow_id, "context": _context(principal)}


@router.get(
    "/features/{feature_id}/{action}",
    summary="Check a feature permission",
    responses=_RESPONSES,
)
async def check_feature(
    feature_id: str,
    action: str,
    principal: Annotated[Principal, Depends(require_principal)],
) -> dict[str, Any]:
    await check_permission(feature_id, action)(principal)
    return {"success": True, "allowed": True, "permission": f"{feature_id}:{action}"}


@router.get("/admin", summary="Administrators only", responses=_RESPONSES)
async def admin_only(
    principal: Annotated[Principal, Depends(require_role(Role.ADMIN.value, Role.OWNER.value))],
) -> dict[str, Any]:
    return {"success": True, "context": _context(principal)}
