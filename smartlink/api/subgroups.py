"""
Subgroup management API: organizational buckets inside a group.

  POST   /v1/groups/{group_id}/subgroups
  PATCH  /v1/subgroups/{id}        rename
  DELETE /v1/subgroups/{id}        delete with its links
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from smartlink.api.deps import get_app_settings, get_audit, get_store
from smartlink.api.schemas import SubgroupResponse, subgroup_response
from smartlink.config import Settings
from smartlink.core.audit import AuditAction, AuditSink
from smartlink.core.errors import EntityNotFound
from smartlink.middleware.actor import get_actor
from smartlink.models.store import CampaignStore

router = APIRouter(prefix="/v1", tags=["subgroups"])


class SubgroupNameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


def _clean_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Subgroup name is required")
    return name


@router.post("/groups/{group_id}/subgroups", response_model=SubgroupResponse, status_code=201)
async def create_subgroup(
    group_id: str,
    req: SubgroupNameRequest,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
    settings: Settings = Depends(get_app_settings),
):
    name = _clean_name(req.name)
    try:
        subgroup = await store.create_subgroup(group_id, name, actor)
    except EntityNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    audit.record("subgroup", subgroup.id, AuditAction.CREATE, actor, details=f"{name} in group {group_id}")
    return subgroup_response(subgroup, settings)


@router.patch("/subgroups/{subgroup_id}", response_model=SubgroupResponse)
async def rename_subgroup(
    subgroup_id: str,
    req: SubgroupNameRequest,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
    settings: Settings = Depends(get_app_settings),
):
    name = _clean_name(req.name)
    try:
        subgroup = await store.rename_subgroup(subgroup_id, name)
    except EntityNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    audit.record("subgroup", subgroup_id, AuditAction.RENAME, actor, details=name)
    return subgroup_response(subgroup, settings)


@router.delete("/subgroups/{subgroup_id}")
async def delete_subgroup(
    subgroup_id: str,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
):
    try:
        removed_links = await store.delete_subgroup(subgroup_id)
    except EntityNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    audit.record("subgroup", subgroup_id, AuditAction.DELETE, actor, details=f"cascade: {removed_links} links")
    return {"status": "deleted", "id": subgroup_id, "links": removed_links}
