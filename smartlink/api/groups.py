"""
Group management API: campaigns and their publish state.

  GET    /v1/groups               every group with subgroups + links
  GET    /v1/groups/{id}          one group tree
  POST   /v1/groups               create (unpublished) + N default subgroups
  PATCH  /v1/groups/{id}          rename          (refused while published)
  PUT    /v1/groups/{id}/status   publish / unpublish
  DELETE /v1/groups/{id}          delete with all subgroups + links (refused while published)

Every mutation writes exactly one audit record attributed to X-Actor-Email.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from smartlink.api.deps import get_app_settings, get_audit, get_store
from smartlink.api.schemas import GroupResponse, GroupTreeResponse, group_response, group_tree_response
from smartlink.config import Settings
from smartlink.core.audit import AuditAction, AuditSink
from smartlink.core.errors import EntityNotFound, GroupLocked
from smartlink.middleware.actor import get_actor
from smartlink.models.store import CampaignStore
from smartlink.models.tables import GroupStatus

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/groups", tags=["groups"])


class CreateGroupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    subgroup_count: int = Field(default=1, ge=0)


class RenameGroupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class GroupStatusRequest(BaseModel):
    status: GroupStatus


def _not_found(exc: EntityNotFound) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


def _locked(exc: GroupLocked) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc))


@router.get("", response_model=list[GroupTreeResponse])
async def list_groups(
    store: CampaignStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    groups = await store.list_groups_with_tree()
    return [group_tree_response(g, settings) for g in groups]


@router.get("/{group_id}", response_model=GroupTreeResponse)
async def get_group(
    group_id: str,
    store: CampaignStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    try:
        group = await store.get_group(group_id)
    except EntityNotFound as exc:
        raise _not_found(exc)
    return group_tree_response(group, settings)


@router.post("", response_model=GroupTreeResponse, status_code=201)
async def create_group(
    req: CreateGroupRequest,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
    settings: Settings = Depends(get_app_settings),
):
    name = req.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Group name is required")
    if req.subgroup_count > settings.max_subgroups_per_group:
        raise HTTPException(
            status_code=400,
            detail=f"subgroup_count cannot exceed {settings.max_subgroups_per_group}",
        )

    group = await store.create_group(name, req.subgroup_count, actor)
    audit.record("group", group.id, AuditAction.CREATE, actor,
                 details=f"{name} ({req.subgroup_count} subgroups)")
    return group_tree_response(group, settings)


@router.patch("/{group_id}", response_model=GroupResponse)
async def rename_group(
    group_id: str,
    req: RenameGroupRequest,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
    settings: Settings = Depends(get_app_settings),
):
    name = req.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Group name is required")
    try:
        group = await store.rename_group(group_id, name)
    except EntityNotFound as exc:
        raise _not_found(exc)
    except GroupLocked as exc:
        raise _locked(exc)

    audit.record("group", group_id, AuditAction.RENAME, actor, details=name)
    return group_response(group, settings)


@router.put("/{group_id}/status", response_model=GroupResponse)
async def set_group_status(
    group_id: str,
    req: GroupStatusRequest,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
    settings: Settings = Depends(get_app_settings),
):
    try:
        group, changed = await store.set_group_status(group_id, req.status)
    except EntityNotFound as exc:
        raise _not_found(exc)

    details = req.status.value if changed else f"{req.status.value} (unchanged)"
    audit.record("group", group_id, AuditAction.STATUS_CHANGE, actor, details=details)
    return group_response(group, settings)


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
):
    try:
        counts = await store.delete_group(group_id)
    except EntityNotFound as exc:
        raise _not_found(exc)
    except GroupLocked as exc:
        raise _locked(exc)

    audit.record("group", group_id, AuditAction.DELETE, actor,
                 details=f"cascade: {counts['subgroups']} subgroups, {counts['links']} links")
    return {"status": "deleted", "id": group_id, **counts}
