"""
Response schemas shared by the campaign routers.

Timestamps are stored in UTC and converted to SL_DISPLAY_TIMEZONE here,
on the way out.
"""

from datetime import date, datetime

from pydantic import BaseModel

from smartlink.config import Settings
from smartlink.core.clock import to_display
from smartlink.core.token_codec import mask_short_code, public_url
from smartlink.models.tables import Group, Link, Subgroup


class LinkResponse(BaseModel):
    id: str
    subgroup_id: str
    label: str
    target_url: str
    short_code: str
    masked_token: str
    public_url: str
    clicks: int
    expires_at: date
    created_at: datetime
    created_by: str


class SubgroupResponse(BaseModel):
    id: str
    group_id: str
    name: str
    created_at: datetime
    created_by: str


class SubgroupTreeResponse(SubgroupResponse):
    links: list[LinkResponse]


class GroupResponse(BaseModel):
    id: str
    name: str
    status: str
    created_at: datetime
    published_at: datetime | None
    created_by: str


class GroupTreeResponse(GroupResponse):
    subgroups: list[SubgroupTreeResponse]


def link_response(link: Link, settings: Settings) -> LinkResponse:
    return LinkResponse(
        id=link.id,
        subgroup_id=link.subgroup_id,
        label=link.label,
        target_url=link.target_url,
        short_code=link.short_code,
        masked_token=mask_short_code(link.short_code),
        public_url=public_url(link.short_code, settings.base_url),
        clicks=link.clicks,
        expires_at=link.expires_at,
        created_at=to_display(link.created_at, settings.tz),
        created_by=link.created_by,
    )


def subgroup_response(subgroup: Subgroup, settings: Settings) -> SubgroupResponse:
    return SubgroupResponse(
        id=subgroup.id,
        group_id=subgroup.group_id,
        name=subgroup.name,
        created_at=to_display(subgroup.created_at, settings.tz),
        created_by=subgroup.created_by,
    )


def subgroup_tree_response(subgroup: Subgroup, settings: Settings) -> SubgroupTreeResponse:
    return SubgroupTreeResponse(
        **subgroup_response(subgroup, settings).model_dump(),
        links=[link_response(link, settings) for link in subgroup.links],
    )


def group_response(group: Group, settings: Settings) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        name=group.name,
        status=group.status,
        created_at=to_display(group.created_at, settings.tz),
        published_at=to_display(group.published_at, settings.tz),
        created_by=group.created_by,
    )


def group_tree_response(group: Group, settings: Settings) -> GroupTreeResponse:
    return GroupTreeResponse(
        **group_response(group, settings).model_dump(),
        subgroups=[subgroup_tree_response(s, settings) for s in group.subgroups],
    )
