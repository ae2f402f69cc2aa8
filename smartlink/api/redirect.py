"""
Smart-link redirect endpoint: /l/{masked_token}

Responses:
  302  → Location: link target (human or crawler, only humans are counted)
  404  → "link not recognized" page (unknown token)
  403  → same page (unpublished group or expired link)
  500  → plain text (store unavailable; reported to the error log)
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

from smartlink.api.deps import get_app_settings, get_error_reporter, get_resolver, request_context
from smartlink.config import Settings
from smartlink.core.audit import ErrorReporter
from smartlink.core.error_page import render_error_page
from smartlink.core.errors import StoreUnavailable
from smartlink.core.resolver import Outcome, RedirectResolver

router = APIRouter(tags=["redirect"])

_STATUS_BY_OUTCOME = {
    Outcome.NOT_FOUND: 404,
    Outcome.FORBIDDEN: 403,
}


@router.get("/l/{masked_token}")
async def follow_link(
    masked_token: str,
    request: Request,
    resolver: RedirectResolver = Depends(get_resolver),
    errors: ErrorReporter = Depends(get_error_reporter),
    settings: Settings = Depends(get_app_settings),
):
    ua = request.headers.get("user-agent")

    try:
        resolution = await resolver.resolve(masked_token, ua)
    except StoreUnavailable as exc:
        errors.report(request.url.path, request.method, exc, request_context(request))
        return PlainTextResponse("Internal Server Error", status_code=500)

    if resolution.outcome is Outcome.REDIRECT:
        return RedirectResponse(url=resolution.target_url, status_code=302)

    return HTMLResponse(
        render_error_page(settings.home_url, settings.error_page_locale),
        status_code=_STATUS_BY_OUTCOME[resolution.outcome],
    )
