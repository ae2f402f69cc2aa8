"""
Publish policy: the one place that decides which group mutations are allowed.

Rule: a published group is frozen except for its status transition. Rename
and delete are refused until the group is unpublished again. Subgroups and
links inside a published group remain editable.

The rule can be switched off with SL_LOCK_PUBLISHED_GROUPS=false.
"""

from enum import Enum

from smartlink.config import get_settings
from smartlink.core.errors import GroupLocked
from smartlink.models.tables import Group, GroupStatus


class GroupAction(str, Enum):
    RENAME = "rename"
    DELETE = "delete"
    SET_STATUS = "set_status"


def check_group_mutation(group: Group, action: GroupAction, lock_published: bool | None = None) -> None:
    """Raise GroupLocked if `action` is not allowed on `group` right now."""
    if lock_published is None:
        lock_published = get_settings().lock_published_groups

    if action is GroupAction.SET_STATUS:
        return
    if lock_published and group.status == GroupStatus.PUBLISHED.value:
        raise GroupLocked(group.id, action.value)
