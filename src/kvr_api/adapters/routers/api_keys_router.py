# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""API Keys Router: ``/api/v1/api-keys``.

CRUD over the caller's API keys. Every query is tenant-filtered: by the
effective organization when there is one, else by owner. API-key callers need
the ``apikeys:read`` / ``apikeys:write`` scopes; externally authenticated
callers need the matching ``kvr.apikeys`` feature permission.

``/scopes/list`` is declared before ``/{key_id}`` so it is not captured as an id.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from kvr_api.adapters.schemas.http import ERROR_RESPONSES, MessageEnvelope, SuccessEnvelope
from kvr_api.adapters.schemas.http.api_keys import (
    ApiKeyCreatedView,
    ApiKeyCreateRequest,
    ApiKeyStatsView,
    ApiKeyUpdateRequest,
    ApiKeyView,
    ScopeView,
)
from kvr_api.application.services.api_keys import AVAILABLE_SCOPES, ApiKeyService
from kvr_api.domain.entities.principal import Principal
from kvr_api.infrastructure.auth.dependencies import get_container, require_principal
from kvr_api.infrastructure.auth.guards import check_permission, require_scope

router = APIRouter(prefix="/api-keys", tags=["API Keys"])

_RESPONSES = {401: ERROR_RESPONSES[401], 403: ERROR_RESPONSES[403], 429: ERROR_RESPONSES[429]}

CAN_READ = [Depends(require_scope("apikeys:read"))]
CAN_WRITE = [Depends(require_scope("apikeys:write"))]


def get_api_keys(request: Request) -> ApiKeyService:
    return get_container(request).api_keys


ServiceDep = Annotated[ApiKeyService, Depends(get_api_keys)]
ReaderDep = Annotated[Principal, Depends(check_permission("kvr.apikeys", "read"))]
CreatorDep = Annotated[Principal, Depends(check_permission("kvr.apikeys", "create"))]
UpdaterDep = Annotated[Principal, Depends(check_permission("kvr.apikeys", "update"))]
DeleterDep = Annotated[Principal, Depends(check_permission("kvr.apikeys", "delete"))]
RegeneratorDep = Annotated[
    Principal, Depends(check_permission("kvr.apikeys.regenerate", "execute"))
]


@router.get(
    "",
    summary="List API keys",
    response_model=SuccessEnvelope[list[ApiKeyView]],
    responses=_RESPONSES,
    dependencies=CAN_READ,
)
async def list_api_keys(
    principal: ReaderDep,
    service: ServiceDep,
    include_inactive: Annotated[bool, Query(alias="includeInactive")] = False,
) -> SuccessEnvelope[list[ApiKeyView]]:
    records = await service.list_keys(principal, include_inactive=include_inactive)
    return SuccessEnvelope[list[ApiKeyView]](data=[ApiKeyView.from_record(r) for r in records])


@router.post(
    "",
    summary="Create an API key",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[ApiKeyCreatedView],
    responses=_RESPONSES,
    dependencies=CAN_WRITE,
)
async def create_api_key(
    payload: ApiKeyCreateRequest, principal: CreatorDep, service: ServiceDep
) -> SuccessEnvelope[ApiKeyCreatedView]:
    issued = await service.create_key(
        principal,
        name=payload.name,
        description=payload.description,
        scopes=payload.scopes,
        workflow_ids=payload.workflow_ids,
        project_ids=payload.project_ids,
        rate_limit=payload.rate_limit,
        expires_at=payload.expires_at,
    )
    return SuccessEnvelope[ApiKeyCreatedView](
        data=ApiKeyCreatedView.issued(issued.record, issued.raw_key),
        message="API key created. Save this key securely, it will not be shown again.",
    )


@router.get(
    "/scopes/list",
    summary="List grantable scopes",
    response_model=SuccessEnvelope[list[ScopeView]],
    dependencies=[Depends(require_principal)],
)
async def list_scopes() -> SuccessEnvelope[list[ScopeView]]:
    return SuccessEnvelope[list[ScopeView]](
        data=[ScopeView(scope=k, description=v) for k, v in AVAILABLE_SCOPES.items()]
    )


@router.get(
    "/{key_id}",
    summary="Get an API key",
    response_model=SuccessEnvelope[ApiKeyView],
    responses={**_RESPONSES, 404: {"description": "API key not found"}},
    dependencies=CAN_READ,
)
async def get_api_key(
    key_id: str, principal: ReaderDep, service: ServiceDep
) -> SuccessEnvelope[ApiKeyView]:
    record = await service.get_key(principal, key_id)
    return SuccessEnvelope[ApiKeyView](data=ApiKeyView.from_record(record))


@router.patch(
    "/{key_id}",
    summary="Update an API key",
    response_model=SuccessEnvelope[ApiKeyView],
    responses={**_RESPONSES, 404: {"description": "API key not found"}},
    dependencies=CAN_WRITE,
)
async def update_api_key(
    key_id: str, payload: ApiKeyUpdateRequest, principal: UpdaterDep, service: ServiceDep
) -> SuccessEnvelope[ApiKeyView]:
    record = await service.update_key(principal, key_id, payload.model_dump(exclude_unset=True))
    return SuccessEnvelope[ApiKeyView](data=ApiKeyView.from_record(record))


@router.delete(
    "/{key_id}",
    summary="Delete an API key",
    response_model=MessageEnvelope,
    responses={**_RESPONSES, 404: {"description": "API key not found"}},
    dependencies=CAN_WRITE,
)
async def delete_api_key(
    key_id: str, principal: DeleterDep, service: ServiceDep
) -> MessageEnvelope:
    await service.delete_key(principal, key_id)
    return MessageEnvelope(message="API key deleted")


@router.post(
    "/{key_id}/regenerate",
    summary="Replace the secret of an API key",
    response_model=SuccessEnvelope[ApiKeyCreatedView],
    responses={**_RESPONSES, 404: {"description": "API key not found"}},
    dependencies=CAN_WRITE,
)
async def regenerate_api_key(
    key_id: str, principal: RegeneratorDep, service: ServiceDep
) -> SuccessEnvelope[ApiKeyCreatedView]:
    issued = await service.regenerate_key(principal, key_id)
    return SuccessEnvelope[ApiKeyCreatedView](
        data=ApiKeyCreatedView.issued(issued.record, issued.raw_key),
        message="API key regenerated. The previous key no longer works.",
    )


@router.get(
    "/{key_id}/stats",
    summary="Usage and rate-limit state of an API key",
    response_model=SuccessEnvelope[ApiKeyStatsView],
    responses={**_RESPONSES, 404: {"description": "API key not found"}},
    dependencies=CAN_READ,
)
async def api_key_stats(
    key_id: str, principal: ReaderDep, service: ServiceDep
) -> SuccessEnvelope[ApiKeyStatsView]:
    stats = await service.stats(principal, key_id)
    return SuccessEnvelope[ApiKeyStatsView](data=ApiKeyStatsView.model_validate(stats))
