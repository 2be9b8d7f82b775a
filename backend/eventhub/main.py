# eventhub/main.py
from __future__ import annotations

import structlog
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

# Import router objects explicitly to avoid module name collisions
from eventhub.routers.health import router as health_router
from eventhub.routers.auth import router as auth_router
from eventhub.routers.sources import router as sources_router
from eventhub.routers.calendar import router as calendar_router
from eventhub.db import session as db_session
from eventhub.db.base import Base
from eventhub.core.errors import EventHubError
from eventhub.core.security import get_current_user
from eventhub.observability.logging import configure_logging
from eventhub.observability.middleware import (
    domain_exception_handler,
    register_request_middleware,
    unhandled_exception_handler,
)
from eventhub.observability.metrics import router as observability_router
from eventhub.scheduler.setup import init_scheduler, shutdown_scheduler
from eventhub.security.middleware import SecurityHeadersMiddleware
from eventhub.config import get_settings

configure_logging()
logger = structlog.get_logger(__name__)

DEV_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

# Calendar clients fetch these without credentials from anywhere.
PUBLIC_FEED_PATHS = ("/api/calendar/feed",)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Community Event Hub", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEV_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=86400
    )

    if settings.TRUSTED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.TRUSTED_HOSTS)

    if settings.FORCE_HTTPS:
        app.add_middleware(HTTPSRedirectMiddleware)

    app.add_middleware(
        SecurityHeadersMiddleware,
        csp=settings.CONTENT_SECURITY_POLICY,
        hsts_max_age=settings.HSTS_MAX_AGE,
        enable_hsts=settings.FORCE_HTTPS,
        public_paths=PUBLIC_FEED_PATHS,
    )

    register_request_middleware(app)
    app.add_exception_handler(EventHubError, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Create missing tables on brand-new dev databases; migrations own everything else.
    @app.on_event("startup")
    def _ensure_tables() -> None:
        try:
            Base.metadata.create_all(bind=db_session.get_engine())
        except SQLAlchemyError:
            logger.exception("db.create_all_failed")

    @app.on_event("startup")
    async def _start_scheduler() -> None:
        await init_scheduler(app)

    @app.on_event("shutdown")
    async def _stop_scheduler() -> None:
        await shutdown_scheduler()

    # Public routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(observability_router)
    app.include_router(calendar_router)

    # Private routers share the same auth dependency
    require_auth = [Depends(get_current_user)]

    app.include_router(sources_router, dependencies=require_auth)

    return app


app = create_app()
