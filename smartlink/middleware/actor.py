"""
Actor attribution for the audit trail.

Identity is owned by the upstream dashboard / identity provider. It forwards
the signed-in user's email in X-Actor-Email; we treat it as an opaque string
and never validate it. Requests without it are attributed to the system
sentinel (SL_SYSTEM_ACTOR, default "system").
"""

from fastapi import Depends, Security
from fastapi.security import APIKeyHeader

from smartlink.api.deps import get_app_settings
from smartlink.config import Settings

actor_header = APIKeyHeader(name="X-Actor-Email", auto_error=False, scheme_name="ActorEmail")


async def get_actor(
    actor_email: str | None = Security(actor_header),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Resolve the actor for the current request."""
    if actor_email and actor_email.strip():
        return actor_email.strip()[:255]
    return settings.system_actor
