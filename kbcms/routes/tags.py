"""
Admin routes for tag management.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from kbcms.db.database import get_db
from kbcms.db.models import Tag
from kbcms.errors import DuplicateName, NoSelection, NotFound, PersistenceError, ValidationError, public_message
from kbcms.routes.auth import csrf_protect, get_auth, require_admin
from kbcms.routes.pages import render
from kbcms.services import tags as tags_service
from kbcms.services.auth import AuthService, SessionUser

router = APIRouter(prefix="/admin/tags", tags=["admin"])


def render_tag_form(
    request: Request,
    auth: AuthService,
    tag: Optional[Tag],
    name: str,
    error: Optional[str] = None,
    status_code: int = 200,
):
    return render(
        request,
        "admin/tag_form.html",
        {"tag": tag, "form": {"name": name}, "error": error},
        auth=auth,
        status_code=status_code,
    )


@router.get("")
async def admin_tags(
    request: Request,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """List tags with article counts."""
    return render(request, "admin/tags.html", {"tags": tags_service.list_tags(db)}, auth=auth)


@router.get("/new")
async def admin_new_tag(
    request: Request,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth)
):
    return render_tag_form(request, auth, None, "")


@router.post("/new", dependencies=[Depends(csrf_protect)])
async def admin_create_tag(
    request: Request,
    name: str = Form(""),
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    try:
        tag = tags_service.save_tag(db, name, mode="create")
    except (ValidationError, DuplicateName) as exc:
        return render_tag_form(request, auth, None, name, exc.message, status_code=400)
    except PersistenceError as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
        return RedirectResponse(url="/admin/tags/new", status_code=303)

    request.state.session.flash("success", "Tag created successfully.")
    return RedirectResponse(url=f"/admin/tags/{tag.id}/edit", status_code=303)


@router.post("/bulk-delete", dependencies=[Depends(csrf_protect)])
async def admin_bulk_delete_tags(
    request: Request,
    selected_tags: List[int] = Form([]),
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    try:
        count = tags_service.bulk_delete_tags(db, selected_tags)
    except (NoSelection, PersistenceError) as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
    else:
        request.state.session.flash("success", f"{count} tags deleted successfully.")
    return RedirectResponse(url="/admin/tags", status_code=303)


@router.get("/{tag_id}/edit")
async def admin_edit_tag(
    request: Request,
    tag_id: int,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    tag = tags_service.get_tag(db, tag_id)
    if not tag:
        request.state.session.flash("error", "Tag not found.")
        return RedirectResponse(url="/admin/tags", status_code=303)

    return render_tag_form(request, auth, tag, tag.name)


@router.post("/{tag_id}/edit", dependencies=[Depends(csrf_protect)])
async def admin_update_tag(
    request: Request,
    tag_id: int,
    name: str = Form(""),
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    try:
        tags_service.save_tag(db, name, mode="update", tag_id=tag_id)
    except NotFound as exc:
        request.state.session.flash("error", exc.message)
        return RedirectResponse(url="/admin/tags", status_code=303)
    except (ValidationError, DuplicateName) as exc:
        tag = tags_service.get_tag(db, tag_id)
        return render_tag_form(request, auth, tag, name, exc.message, status_code=400)
    except PersistenceError as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
        return RedirectResponse(url=f"/admin/tags/{tag_id}/edit", status_code=303)

    request.state.session.flash("success", "Tag updated successfully.")
    return RedirectResponse(url=f"/admin/tags/{tag_id}/edit", status_code=303)


@router.post("/{tag_id}/delete", dependencies=[Depends(csrf_protect)])
async def admin_delete_tag(
    request: Request,
    tag_id: int,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    try:
        tags_service.delete_tag(db, tag_id)
    except (NotFound, PersistenceError) as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
    else:
        request.state.session.flash("success", "Tag deleted successfully.")
    return RedirectResponse(url="/admin/tags", status_code=303)
