# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Authorization guards (FastAPI dependency factories).

Each factory returns a dependency that authenticates through
``require_principal`` (cached per request by FastAPI) and then applies one
rule, returning the principal on success:

    * ``require_role(*roles)``: any of the application roles.
    * ``require_scope(scope)``: API keys must hold ``scope``.
    * ``check_workflow_access(param)``: API keys must allow the workflow in
      the path.
    * ``check_permission(feature, action)``: external principals must hold a
      matching feature permission.
    * ``require_org_context(min_role)``: an effective organization, optionally
      with a minimum organization role.

Matching rules themselves live in ``kvr_api.domain.services.permissions``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request

from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.enums.auth import AuthSource, OrgRole
from kvr_api.domain.exceptions.auth import (
    InsufficientPermissions,
    MissingScope,
    OrgContextRequired,
    WorkflowNotAllowed,
)
from kvr_api.domain.services.permissions import has_min_org_role, has_permission, has_scope
from kvr_api.infrastructure.auth.dependencies import require_principal

__all__ = [
    "check_permission",
    "check_workflow_access",
    "require_org_context",
    "require_role",
    "require_scope",
]

Guard = Callable[..., Awaitable[Principal]]
PrincipalDep = Annotated[Principal, Depends(require_principal)]


def require_role(*roles: str) -> Guard:
    """Admit principals holding at least one of ``roles``."""
    wanted = tuple(r.upper() for r in roles)

    async def _guard(principal: PrincipalDep) -> Principal:
        if not set(wanted) & set(principal.roles):
            raise InsufficientPermissions(
                details={"required": list(wanted), "current": list(principal.roles)}
            )
        return principal

    return _guard


def require_scope(scope: str) -> Guard:
    """Require ``scope`` on API-key principals; token principals pass."""

    async def _guard(principal: PrincipalDep) -> Principal:
        grant = principal.api_key
        if grant is not None and not has_scope(grant.scopes, scope):
            raise MissingScope(details={"required": scope, "available": list(grant.scopes)})
        return principal

    return _guard


def check_workflow_access(param_name: str = "workflow_id") -> Guard:
    """Require API-key principals to be allowed the workflow named in the path.

    Falls back to an ``id`` path parameter when ``param_name`` is absent.
    """

    async def _guard(request: Request, principal: PrincipalDep) -> Principal:
        grant = principal.api_key
        if grant is None:
            return principal
        workflow_id = request.path_params.get(param_name, request.path_params.get("id"))
        if workflow_id is not None and not grant.allows_workflow(str(workflow_id)):
            raise WorkflowNotAllowed(details={"workflowId": str(workflow_id)})
        return principal

    return _guard


def check_permission(feature_id: str, action: str) -> Guard:
    """Require a feature permission from externally authenticated principals.

    Local, API-key and developer principals carry no feature permissions and
    pass; API keys are gated by scopes instead.
    """

    async def _guard(principal: PrincipalDep) -> Principal:
        if principal.auth_source is not AuthSource.EXTERNAL:
            return principal
        if not has_permission(principal.permissions, feature_id, action):
            raise InsufficientPermissions(
                f"Permission denied: {feature_id}:{action}",
                details={"required": f"{feature_id}:{action}"},
            )
        return principal

    return _guard


def require_org_context(min_role: OrgRole | None = None) -> Guard:
    """Require an effective organization, and optionally a minimum org role."""

    async def _guard(principal: PrincipalDep) -> Principal:
        if principal.org_id is None:
            raise OrgContextRequired()
        if min_role is not None and not has_min_org_role(principal.org_role, min_role.value):
            raise InsufficientPermissions(
                details={"required": min_role.value, "current": principal.org_role}
            )
        return principal

    return _guard
