"""
Admin routes for knowledge base article management.
Protected by session-based authentication.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from kbcms.db.database import get_db
from kbcms.db.models import ARTICLE_STATUSES, Article
from kbcms.errors import NoSelection, NotFound, PersistenceError, ValidationError, public_message
from kbcms.routes.auth import csrf_protect, get_auth, require_admin
from kbcms.routes.pages import parse_id, render
from kbcms.services import articles as articles_service
from kbcms.services import categories as categories_service
from kbcms.services import dashboard
from kbcms.services import search as search_service
from kbcms.services import tags as tags_service
from kbcms.services.articles import ArticleInput
from kbcms.services.auth import AuthService, SessionUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

# bulk_action form value -> (status or None for delete, past-tense label)
BULK_ACTIONS = {
    "publish": ("published", "published"),
    "draft": ("draft", "moved to draft"),
    "archive": ("archived", "archived"),
    "delete": (None, "deleted"),
}


def article_form_values(article: Optional[Article] = None) -> dict:
    if article is None:
        return {
            "title": "",
            "content": "",
            "excerpt": "",
            "category_id": None,
            "status": "draft",
            "featured": False,
            "tag_ids": [],
        }
    return {
        "title": article.title,
        "content": article.content,
        "excerpt": article.excerpt or "",
        "category_id": article.category_id,
        "status": article.status,
        "featured": article.featured,
        "tag_ids": [tag.id for tag in article.tags],
    }


def render_article_form(
    request: Request,
    db: Session,
    auth: AuthService,
    article: Optional[Article],
    form: dict,
    error: Optional[str] = None,
    status_code: int = 200,
):
    return render(
        request,
        "admin/article_form.html",
        {
            "article": article,
            "form": form,
            "error": error,
            "statuses": ARTICLE_STATUSES,
            "categories": [category for category, _ in categories_service.list_categories(db)],
            "tags": tags_service.all_tags(db),
        },
        auth=auth,
        status_code=status_code,
    )


@router.get("")
async def admin_dashboard(
    request: Request,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """Admin dashboard with totals and recent activity."""
    return render(request, "admin/dashboard.html", dashboard.dashboard_data(db), auth=auth)


@router.get("/articles")
async def admin_articles(
    request: Request,
    status: str = "",
    category: str = "",
    search: str = "",
    page: int = 1,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """List all articles for admin."""
    settings = request.app.state.settings
    articles, pagination = search_service.list_articles(
        db,
        status=status or None,
        category_id=parse_id(category),
        query=search,
        page=page,
        per_page=settings.articles_per_page,
    )
    return render(
        request,
        "admin/articles.html",
        {
            "articles": articles,
            "pagination": pagination,
            "categories": [c for c, _ in categories_service.list_categories(db)],
            "statuses": ARTICLE_STATUSES,
            "filters": {"status": status, "category": parse_id(category), "search": search},
        },
        auth=auth,
    )


@router.get("/articles/new")
async def admin_new_article(
    request: Request,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """New article form."""
    return render_article_form(request, db, auth, None, article_form_values())


@router.post("/articles/new", dependencies=[Depends(csrf_protect)])
async def admin_create_article(
    request: Request,
    title: str = Form(""),
    content: str = Form(""),
    excerpt: str = Form(""),
    category_id: Optional[int] = Form(None),
    status: str = Form("draft"),
    featured: bool = Form(False),
    tags: List[int] = Form([]),
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """Create a new article."""
    data = ArticleInput(
        title=title,
        content=content,
        excerpt=excerpt,
        category_id=category_id,
        status=status,
        featured=featured,
        tag_ids=tags,
    )
    try:
        article = articles_service.create_article(db, data, author_id=user.id)
    except ValidationError as exc:
        form = {**vars(data), "tag_ids": list(tags)}
        return render_article_form(request, db, auth, None, form, exc.message, status_code=400)
    except PersistenceError as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
        return RedirectResponse(url="/admin/articles/new", status_code=303)

    request.state.session.flash("success", "Article created successfully.")
    return RedirectResponse(url=f"/admin/articles/{article.id}/edit", status_code=303)


@router.get("/articles/{article_id}/edit")
async def admin_edit_article(
    request: Request,
    article_id: int,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """Edit article form."""
    article = articles_service.get_article(db, article_id)
    if not article:
        request.state.session.flash("error", "Article not found.")
        return RedirectResponse(url="/admin/articles", status_code=303)

    return render_article_form(request, db, auth, article, article_form_values(article))


@router.post("/articles/{article_id}/edit", dependencies=[Depends(csrf_protect)])
async def admin_update_article(
    request: Request,
    article_id: int,
    title: str = Form(""),
    content: str = Form(""),
    excerpt: str = Form(""),
    category_id: Optional[int] = Form(None),
    status: str = Form("draft"),
    featured: bool = Form(False),
    tags: List[int] = Form([]),
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """Update an article."""
    data = ArticleInput(
        title=title,
        content=content,
        excerpt=excerpt,
        category_id=category_id,
        status=status,
        featured=featured,
        tag_ids=tags,
    )
    try:
        articles_service.update_article(db, article_id, data)
    except NotFound as exc:
        request.state.session.flash("error", exc.message)
        return RedirectResponse(url="/admin/articles", status_code=303)
    except ValidationError as exc:
        article = articles_service.get_article(db, article_id)
        form = {**vars(data), "tag_ids": list(tags)}
        return render_article_form(request, db, auth, article, form, exc.message, status_code=400)
    except PersistenceError as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
        return RedirectResponse(url=f"/admin/articles/{article_id}/edit", status_code=303)

    request.state.session.flash("success", "Article updated successfully.")
    return RedirectResponse(url=f"/admin/articles/{article_id}/edit", status_code=303)


@router.post("/articles/{article_id}/delete", dependencies=[Depends(csrf_protect)])
async def admin_delete_article(
    request: Request,
    article_id: int,
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """Delete an article."""
    try:
        articles_service.delete_article(db, article_id)
    except (NotFound, PersistenceError) as exc:
        request.state.session.flash("error", public_message(exc, auth.settings.debug))
    else:
        request.state.session.flash("success", "Article deleted successfully.")
    return RedirectResponse(url="/admin/articles", status_code=303)


@router.post("/articles/bulk", dependencies=[Depends(csrf_protect)])
async def admin_bulk_articles(
    request: Request,
    bulk_action: str = Form(""),
    selected_articles: List[int] = Form([]),
    user: SessionUser = Depends(require_admin),
    auth: AuthService = Depends(get_auth),
    db: Session = Depends(get_db)
):
    """Publish, draft, archive or delete the selected articles."""
    session = request.state.session
    if bulk_action not in BULK_ACTIONS:
        session.flash("error", "Invalid bulk action.")
        return RedirectResponse(url="/admin/articles", status_code=303)

    status, label = BULK_ACTIONS[bulk_action]
    try:
        if status is None:
            count = articles_service.bulk_delete(db, selected_articles)
        else:
            count = articles_service.bulk_update_status(db, selected_articles, status)
    except (NoSelection, ValidationError, PersistenceError) as exc:
        session.flash("error", public_message(exc, auth.settings.debug))
    else:
        session.flash("success", f"{count} articles {label}.")
    return RedirectResponse(url="/admin/articles", status_code=303)
