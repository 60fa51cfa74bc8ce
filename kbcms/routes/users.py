"""
User management, restricted to the admin role.
"""

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse

from kbcms.errors import DuplicateIdentity, PersistenceError, ValidationError, public_message
from kbcms.routes.auth import csrf_protect, get_auth, require_role
from kbcms.routes.pages import render
from kbcms.services.auth import USER_ROLES, AuthService, SessionUser

router = APIRouter(prefix="/admin/users", tags=["admin"])

require_admin_role = require_role({"admin"})


def render_users(request: Request, auth: AuthService, form: dict, error: str = None, status_code: int = 200):
    return render(
        request,
        "admin/users.html",
        {"users": auth.list_users(), "roles": USER_ROLES, "form": form, "error": error},
        auth=auth,
        status_code=status_code,
    )


@router.get("")
async def admin_users(
    request: Request,
    user: SessionUser = Depends(require_admin_role),
    auth: AuthService = Depends(get_auth)
):
    return render_users(request, auth, {"username": "", "email": "", "role": "editor"})


@router.post("/new", dependencies=[Depends(csrf_protect)])
async def admin_create_user(
    request: Request,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    role: str = Form("editor"),
    user: SessionUser = Depends(require_admin_role),
    auth: AuthService = Depends(get_auth)
):
    try:
        auth.create_user(username, email, password, role)
    except (ValidationError, DuplicateIdentity) as exc:
        form = {"username": username, "email": email, "role": role}
        return render_users(request, auth, form, exc.message, status_code=400)
    except PersistenceError as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
        return RedirectResponse(url="/admin/users", status_code=303)

    request.state.session.flash("success", "User created successfully.")
    return RedirectResponse(url="/admin/users", status_code=303)
