"""
Smartlink: smart-link redirection & analytics.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from smartlink.api.audit import router as audit_router
from smartlink.api.deps import request_context
from smartlink.api.groups import router as groups_router
from smartlink.api.links import router as links_router
from smartlink.api.redirect import router as redirect_router
from smartlink.api.subgroups import router as subgroups_router
from smartlink.config import Settings, get_settings
from smartlink.core.audit import AuditSink, ErrorReporter
from smartlink.core.errors import StoreUnavailable
from smartlink.core.resolver import RedirectResolver
from smartlink.middleware.security import SecurityHeadersMiddleware
from smartlink.models.database import Database
from smartlink.models.store import CampaignStore

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "0.1.0"


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database.from_settings(settings)
        if settings.auto_create_tables:
            await db.create_all()

        store = CampaignStore(db, settings)
        audit = AuditSink(store.append_audit, settings.system_actor, settings.audit_queue_size)
        errors = ErrorReporter(store.append_error, settings.audit_queue_size)
        await audit.start()
        await errors.start()

        app.state.database = db
        app.state.store = store
        app.state.audit = audit
        app.state.errors = errors
        app.state.resolver = RedirectResolver(store, audit, settings)

        logger.info("smartlink_starting", base_url=settings.base_url, timezone=settings.display_timezone)
        yield
        logger.info("smartlink_shutting_down", pending_audit=audit.pending, pending_errors=errors.pending)

        await audit.stop()
        await errors.stop()
        await db.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Smart-link redirection & analytics: publish, gate, count, audit.",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    # Security headers on every response
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS: the dashboard is the only browser client of /v1
    allowed_origins = ["*"] if settings.debug else [settings.home_url]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["X-Actor-Email", "Content-Type"],
    )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        request.app.state.errors.report(request.url.path, request.method, exc, request_context(request))
        return PlainTextResponse("Internal Server Error", status_code=500)

    # --- Routes ---
    app.include_router(redirect_router)
    app.include_router(groups_router)
    app.include_router(subgroups_router)
    app.include_router(links_router)
    app.include_router(audit_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "smartlink", "version": VERSION}

    return app


app = create_app()
