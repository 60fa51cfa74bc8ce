"""
Admin authentication routes and the dependencies that guard admin pages.
Password login against the users table with server-side sessions.
"""

import logging
from typing import Iterable
from urllib.parse import quote, urlparse

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import RedirectResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from kbcms.config import Settings
from kbcms.db.database import get_db
from kbcms.errors import InvalidCredentials, ValidationError
from kbcms.routes.pages import render
from kbcms.services.auth import ADMIN_ROLES, AuthService, SessionUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["auth"])

DEFAULT_NEXT = "/admin"
PUBLIC_HOME = "/"

# Rate limiter for login attempts
limiter = Limiter(key_func=get_remote_address)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth(request: Request, db: Session = Depends(get_db)) -> AuthService:
    """Per-request auth service bound to this request's session."""
    return AuthService(db, request.state.session, request.app.state.settings)


def login_redirect(request: Request) -> HTTPException:
    return HTTPException(
        status_code=302,
        headers={"Location": f"/admin/login?next={quote(request.url.path)}"}
    )


def landing_page(auth: AuthService, next: str = DEFAULT_NEXT) -> str:
    """Where a signed-in user goes: ``next`` for panel users, the public site otherwise."""
    return next if auth.has_role(ADMIN_ROLES) else PUBLIC_HOME


def forbidden_redirect(request: Request, auth: AuthService) -> HTTPException:
    request.state.session.flash("error", "You do not have permission to access that page.")
    return HTTPException(status_code=302, headers={"Location": landing_page(auth)})


def require_admin(request: Request, auth: AuthService = Depends(get_auth)) -> SessionUser:
    """Admin and editor users only. Anonymous users go to the login page."""
    if not auth.is_authenticated():
        raise login_redirect(request)
    if not auth.has_role(ADMIN_ROLES):
        raise forbidden_redirect(request, auth)
    return auth.current_user()


def require_role(roles: Iterable[str]):
    roles = frozenset(roles)

    def dependency(request: Request, auth: AuthService = Depends(get_auth)) -> SessionUser:
        if not auth.is_authenticated():
            raise login_redirect(request)
        if not auth.has_role(roles):
            raise forbidden_redirect(request, auth)
        return auth.current_user()

    return dependency


async def csrf_protect(request: Request, auth: AuthService = Depends(get_auth)) -> None:
    """Reject state-changing requests without the session's CSRF token."""
    form = await request.form()
    auth.validate_csrf_token(form.get(auth.settings.csrf_token_name))


def is_safe_redirect_url(url: str) -> bool:
    """Validate that URL is safe for redirect (same-origin only).

    Prevents open redirect attacks by only allowing relative URLs
    that start with / and don't contain protocol or netloc.
    """
    if not url:
        return False
    parsed = urlparse(url)
    return not parsed.scheme and not parsed.netloc and url.startswith('/') and not url.startswith('//')


@router.get("/login")
async def login_page(request: Request, next: str = DEFAULT_NEXT, auth: AuthService = Depends(get_auth)):
    """Render login page."""
    if not is_safe_redirect_url(next):
        next = DEFAULT_NEXT

    if auth.is_authenticated():
        return RedirectResponse(url=landing_page(auth, next), status_code=302)

    return render(request, "admin/login.html", {"next": next, "username": ""}, auth=auth)


@router.post("/login", dependencies=[Depends(csrf_protect)])
@limiter.limit("5/minute")
async def login(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next: str = Form(DEFAULT_NEXT),
    auth: AuthService = Depends(get_auth)
):
    """Process login form."""
    if not is_safe_redirect_url(next):
        next = DEFAULT_NEXT

    try:
        user = auth.login(username, password)
    except (ValidationError, InvalidCredentials) as exc:
        return render(
            request,
            "admin/login.html",
            {"next": next, "username": username, "error": exc.message},
            auth=auth,
            status_code=401
        )

    request.state.session.flash("success", f"Welcome back, {user.username}!")
    return RedirectResponse(url=landing_page(auth, next), status_code=303)


@router.get("/logout")
async def logout(request: Request, auth: AuthService = Depends(get_auth)):
    """Log out and clear session."""
    auth.logout()
    request.state.session.flash("success", "You have been logged out.")
    return RedirectResponse(url="/admin/login", status_code=302)
