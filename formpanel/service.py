"""Application factory wiring the store, gateway, pages and API together."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.sessions import SessionMiddleware

from .api import register_api_routes
from .auth import AdminCredentials
from .config import Settings, load_settings
from .database import RecordStore
from .gateway import EmailValidationGateway
from .middleware import AccessLogMiddleware, SecurityHeadersMiddleware
from .web import SERVER_ERROR_MESSAGE, register_ui_routes

logger = logging.getLogger("formpanel.service")

PACKAGE_DIR = Path(__file__).resolve().parent
TEMPLATE_DIR = PACKAGE_DIR / "templates"
STATIC_DIR = PACKAGE_DIR / "static"


def build_store(settings: Settings) -> RecordStore:
    return RecordStore(
        settings.database_path,
        pool_size=settings.pool_size,
        connect_timeout=settings.connect_timeout,
        selection_timeout=settings.selection_timeout,
    )


def build_gateway(settings: Settings) -> EmailValidationGateway:
    return EmailValidationGateway(
        settings.email_validation_api_key,
        base_url=settings.email_validation_url,
        timeout=settings.email_validation_timeout,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[RecordStore] = None,
    gateway: Optional[EmailValidationGateway] = None,
    initialize_store: bool = False,
) -> FastAPI:
    """Create the registration panel application."""

    if settings is None:
        settings = load_settings()
    if store is None:
        store = build_store(settings)
        store.initialize()
    elif initialize_store:
        store.initialize()
    if gateway is None:
        gateway = build_gateway(settings)

    app = FastAPI(
        title="Registration Panel",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.gateway = gateway

    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.production)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="formpanel_session",
        max_age=settings.session_max_age,
        https_only=settings.session_secure,
        same_site="lax",
    )
    app.add_middleware(AccessLogMiddleware)

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    if STATIC_DIR.exists():
        app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    register_ui_routes(
        app,
        store,
        gateway,
        templates=templates,
        credentials=AdminCredentials(settings.admin_username, settings.admin_password),
    )
    register_api_routes(
        app,
        store,
        gateway,
        limiter=limiter,
        validate_rate_limit=settings.validate_rate_limit,
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("Server error on %s %s", request.method, request.url.path, exc_info=exc)
        return app.state.render_index(
            request,
            error=SERVER_ERROR_MESSAGE,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return app


__all__ = ["build_gateway", "build_store", "create_app"]
