"""
The gate: decides whether a resolved link may redirect.

A link passes iff its group is published AND the current time is on or
before the last instant of its expiry date. The day boundary is computed in
the configured display timezone, not in UTC.
"""

from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum

from smartlink.models.tables import GroupStatus


class GateFailure(str, Enum):
    UNPUBLISHED = "unpublished"
    EXPIRED = "expired"


def expiry_cutoff(expires_on: date, tz: tzinfo) -> datetime:
    """First instant after the expiry date, i.e. midnight of the next day."""
    return datetime.combine(expires_on + timedelta(days=1), time.min, tzinfo=tz)


def check_gate(
    group_status: str,
    expires_on: date,
    now: datetime,
    tz: tzinfo,
) -> GateFailure | None:
    """Return why the link is blocked, or None if it may redirect."""
    if group_status != GroupStatus.PUBLISHED.value:
        return GateFailure.UNPUBLISHED
    if now >= expiry_cutoff(expires_on, tz):
        return GateFailure.EXPIRED
    return None
