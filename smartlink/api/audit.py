"""
Audit trail API: read-only view for the dashboard.

GET /v1/audit?entity_type=link&entity_id=...&action=CLICK_REAL&limit=100
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from smartlink.api.deps import get_app_settings, get_store
from smartlink.config import Settings
from smartlink.core.clock import to_display
from smartlink.models.store import CampaignStore

router = APIRouter(prefix="/v1/audit", tags=["audit"])


class AuditRecordResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: str
    action: str
    actor_email: str
    details: str | None
    timestamp: datetime


@router.get("", response_model=list[AuditRecordResponse])
async def list_audit(
    store: CampaignStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    entity_type: str | None = None,
    entity_id: str | None = None,
    action: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
):
    """Newest first."""
    tz = settings.tz
    records = await store.list_audit(entity_type=entity_type, entity_id=entity_id, action=action, limit=limit)
    return [
        AuditRecordResponse(
            id=r.id,
            entity_type=r.entity_type,
            entity_id=r.entity_id,
            action=r.action,
            actor_email=r.actor_email,
            details=r.details,
            timestamp=to_display(r.created_at, tz),
        )
        for r in records
    ]
