"""
Application factory for the knowledge base CMS.

Run with: ``uvicorn kbcms.main:create_app --factory``
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from kbcms.config import Settings, get_settings, resolve_secret_key
from kbcms.db.database import init_db, make_engine, make_session_factory
from kbcms.errors import InvalidToken, PersistenceError, public_message
from kbcms.routes import admin, articles, auth, categories, pages, search, tags, users
from kbcms.security import (
    RequestLogMiddleware,
    SecurityHeadersMiddleware,
    SessionMiddleware,
    SessionStore,
    configure_logging,
)

logger = logging.getLogger(__name__)


def safe_redirect_target(path: str) -> str:
    """Section landing page for a rejected form post, e.g. /admin/articles."""
    parts = [part for part in path.split("/") if part]
    if len(parts) >= 2 and parts[0] == "admin":
        return f"/admin/{parts[1]}"
    return "/admin"


async def invalid_token_handler(request: Request, exc: InvalidToken):
    request.state.session.flash("error", exc.message)
    return RedirectResponse(url=safe_redirect_target(request.url.path), status_code=303)


async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Unhandled storage error on {request.method} {request.url.path}: {exc.detail}")
    debug = request.app.state.settings.debug
    return PlainTextResponse(public_message(exc, debug), status_code=500)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    secret_key = resolve_secret_key(settings)

    engine = make_engine(settings.sqlalchemy_url)
    init_db(engine)
    session_factory = make_session_factory(engine)

    app = FastAPI(
        title=settings.site_name,
        description="Knowledge base: admin panel and public article site",
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory

    # Login rate limiting
    auth.limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = auth.limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(InvalidToken, invalid_token_handler)
    app.add_exception_handler(PersistenceError, persistence_error_handler)

    # Last added runs first
    app.add_middleware(
        SessionMiddleware,
        store=SessionStore(session_factory, max_age=settings.session_timeout),
        secret_key=secret_key,
        cookie_name=settings.session_cookie_name,
        max_age=settings.session_timeout,
        secure=settings.cookie_secure,
    )
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.cookie_secure)
    app.add_middleware(RequestLogMiddleware)

    app.include_router(pages.router)
    app.include_router(articles.router)
    app.include_router(search.router)
    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(categories.router)
    app.include_router(tags.router)
    app.include_router(users.router)

    logger.info(f"{settings.site_name} ready (debug={settings.debug})")
    return app
