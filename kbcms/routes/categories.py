"""
Admin routes for category management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from kbcms.db.database import get_db
from kbcms.db.models import Category
from kbcms.errors import DuplicateName, NotEmpty, NotFound, PersistenceError, ValidationError, public_message
from kbcms.routes.auth import csrf_protect, get_auth, require_admin
from kbcms.routes.pages import render
from kbcms.services import categories as categories_service
from kbcms.services.auth import AuthService, SessionUser

router = APIRouter(prefix="/admin/categories", tags=["admin"])


def render_category_form(
    request: Request,
    auth: AuthService,
    category: Optional[Category],
    name: str,
    description: str,
    error: Optional[str] = None,
    status_code: int = 200,
):
    return render(
        request,
        "admin/category_form.html",
        {"category": category, "form": {"name": name, "description": description}, "error": error},
        auth=auth,
        status_code=status_code,
    )


@router.get("")
async def admin_categories(
    request: Request,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """List categories with article counts."""
    return render(
        request,
        "admin/categories.html",
        {"categories": categories_service.list_categories(db)},
        auth=auth,
    )


@router.get("/new")
async def admin_new_category(
    request: Request,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth)
):
    return render_category_form(request, auth, None, "", "")


@router.post("/new", dependencies=[Depends(csrf_protect)])
async def admin_create_category(
    request: Request,
    name: str = Form(""),
    description: str = Form(""),
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    try:
        category = categories_service.save_category(db, name, description, mode="create")
    except (ValidationError, DuplicateName) as exc:
        return render_category_form(request, auth, None, name, description, exc.message, status_code=400)
    except PersistenceError as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
        return RedirectResponse(url="/admin/categories/new", status_code=303)

    request.state.session.flash("success", "Category created successfully.")
    return RedirectResponse(url=f"/admin/categories/{category.id}/edit", status_code=303)


@router.get("/{category_id}/edit")
async def admin_edit_category(
    request: Request,
    category_id: int,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    category = categories_service.get_category(db, category_id)
    if not category:
        request.state.session.flash("error", "Category not found.")
        return RedirectResponse(url="/admin/categories", status_code=303)

    return render_category_form(request, auth, category, category.name, category.description or "")


@router.post("/{category_id}/edit", dependencies=[Depends(csrf_protect)])
async def admin_update_category(
    request: Request,
    category_id: int,
    name: str = Form(""),
    description: str = Form(""),
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    try:
        categories_service.save_category(db, name, description, mode="update", category_id=category_id)
    except NotFound as exc:
        request.state.session.flash("error", exc.message)
        return RedirectResponse(url="/admin/categories", status_code=303)
    except (ValidationError, DuplicateName) as exc:
        category = categories_service.get_category(db, category_id)
        return render_category_form(request, auth, category, name, description, exc.message, status_code=400)
    except PersistenceError as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
        return RedirectResponse(url=f"/admin/categories/{category_id}/edit", status_code=303)

    request.state.session.flash("success", "Category updated successfully.")
    return RedirectResponse(url=f"/admin/categories/{category_id}/edit", status_code=303)


@router.post("/{category_id}/delete", dependencies=[Depends(csrf_protect)])
async def admin_delete_category(
    request: Request,
    category_id: int,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    try:
        categories_service.delete_category(db, category_id)
    except (NotFound, NotEmpty, PersistenceError) as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
    else:
        request.state.session.flash("success", "Category deleted successfully.")
    return RedirectResponse(url="/admin/categories", status_code=303)
