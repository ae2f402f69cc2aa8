"""
Link management API: bulk-create and maintain redirect links.

  POST   /v1/subgroups/{subgroup_id}/links   create N links with fresh short codes
  GET    /v1/links/{id}
  PATCH  /v1/links/{id}                      label / target_url / expires_at
  DELETE /v1/links/{id}

Short codes are allocated by the store (unique, retried on collision). The
response carries both the raw code and the masked public URL.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from smartlink.api.deps import get_app_settings, get_audit, get_store
from smartlink.api.schemas import LinkResponse, link_response
from smartlink.config import Settings
from smartlink.core.audit import AuditAction, AuditSink
from smartlink.core.errors import EntityNotFound, ShortCodeExhausted
from smartlink.middleware.actor import get_actor
from smartlink.models.store import CampaignStore

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/v1", tags=["links"])


class CreateLinksRequest(BaseModel):
    count: int = Field(ge=1)
    expires_at: date
    target_url: str | None = None
    label: str | None = Field(default=None, max_length=255)


class UpdateLinkRequest(BaseModel):
    label: str | None = Field(default=None, min_length=1, max_length=255)
    target_url: str | None = None
    expires_at: date | None = None


def _validate_target_url(url: str) -> str:
    """Prevent open redirect abuse: only allow http/https destinations."""
    url = url.strip()
    if not url.startswith(("https://", "http://")):
        raise HTTPException(status_code=400, detail="target_url must start with https:// or http://")
    if len(url) > 2048:
        raise HTTPException(status_code=400, detail="target_url too long (max 2048 chars)")
    return url


@router.post("/subgroups/{subgroup_id}/links", response_model=list[LinkResponse], status_code=201)
async def create_links(
    subgroup_id: str,
    req: CreateLinksRequest,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
    settings: Settings = Depends(get_app_settings),
):
    if req.count > settings.max_links_per_request:
        raise HTTPException(status_code=400, detail=f"count cannot exceed {settings.max_links_per_request}")
    target_url = _validate_target_url(req.target_url) if req.target_url else None

    try:
        links = await store.create_links(
            subgroup_id,
            req.count,
            req.expires_at,
            actor,
            target_url=target_url,
            label=req.label,
        )
    except EntityNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ShortCodeExhausted as exc:
        logger.error("short_codes_exhausted", subgroup_id=subgroup_id, error=str(exc))
        raise HTTPException(status_code=503, detail="Could not allocate unique short codes, retry later")

    codes = ", ".join(link.short_code for link in links)
    audit.record("subgroup", subgroup_id, AuditAction.BULK_CREATE, actor,
                 details=f"{len(links)} links expiring {req.expires_at.isoformat()}: {codes}")
    return [link_response(link, settings) for link in links]


@router.get("/links/{link_id}", response_model=LinkResponse)
async def get_link(
    link_id: str,
    store: CampaignStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    try:
        link = await store.get_link(link_id)
    except EntityNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return link_response(link, settings)


@router.patch("/links/{link_id}", response_model=LinkResponse)
async def update_link(
    link_id: str,
    req: UpdateLinkRequest,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
    settings: Settings = Depends(get_app_settings),
):
    changes = req.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if "target_url" in changes:
        changes["target_url"] = _validate_target_url(changes["target_url"])

    try:
        link = await store.update_link(link_id, **changes)
    except EntityNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    audit.record("link", link_id, AuditAction.UPDATE, actor,
                 details=", ".join(f"{k}={v}" for k, v in changes.items()))
    return link_response(link, settings)


@router.delete("/links/{link_id}")
async def delete_link(
    link_id: str,
    actor: str = Depends(get_actor),
    store: CampaignStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit),
):
    try:
        await store.delete_link(link_id)
    except EntityNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    audit.record("link", link_id, AuditAction.DELETE, actor)
    return {"status": "deleted", "id": link_id}
