"""FastAPI dependencies: hand out the objects create_app and its lifespan put on app.state."""

from fastapi import Request

from smartlink.config import Settings
from smartlink.core.audit import AuditSink, ErrorReporter
from smartlink.core.resolver import RedirectResolver
from smartlink.models.store import CampaignStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> CampaignStore:
    return request.app.state.store


def get_audit(request: Request) -> AuditSink:
    return request.app.state.audit


def get_error_reporter(request: Request) -> ErrorReporter:
    return request.app.state.errors


def get_resolver(request: Request) -> RedirectResolver:
    return request.app.state.resolver


def request_context(request: Request) -> dict:
    """Subset of the request worth keeping next to an error report."""
    return {
        "path": request.url.path,
        "query": str(request.url.query) or None,
        "path_params": dict(request.path_params),
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "referer": request.headers.get("referer"),
    }
