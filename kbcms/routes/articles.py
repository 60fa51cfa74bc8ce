"""
Public article routes: browse listing and single article view.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from kbcms.db.database import get_db
from kbcms.db.models import Article
from kbcms.errors import NotFound
from kbcms.routes.pages import render
from kbcms.services import articles as articles_service
from kbcms.services import categories as categories_service
from kbcms.services import search as search_service

router = APIRouter(tags=["articles"])


@router.get("/browse")
async def browse(
    request: Request,
    category: str = "",
    featured: bool = False,
    sort: str = "recent",
    page: int = 1,
    db: Session = Depends(get_db)
):
    """Browse published articles, optionally by category or featured only."""
    settings = request.app.state.settings

    selected_category = None
    if category:
        selected_category = categories_service.get_category_by_slug(db, category)
        if selected_category is None:
            request.state.session.flash("error", "Category not found.")
            return RedirectResponse(url="/browse", status_code=302)

    if sort not in search_service.BROWSE_SORTS:
        sort = "recent"

    articles, pagination = search_service.browse_articles(
        db,
        category_id=selected_category.id if selected_category else None,
        featured=featured,
        sort=sort,
        page=page,
        per_page=settings.articles_per_page,
    )

    return render(
        request,
        "browse.html",
        {
            "articles": articles,
            "pagination": pagination,
            "categories": categories_service.list_public_categories(db),
            "selected_category": selected_category,
            "featured": featured,
            "sort": sort,
            "sorts": search_service.BROWSE_SORTS,
        },
    )


def show_article(request: Request, db: Session, article: Article):
    articles_service.increment_views(db, article.id)
    db.refresh(article)

    previous_article, next_article = articles_service.get_adjacent_articles(db, article)
    return render(
        request,
        "article.html",
        {
            "article": article,
            "tags": articles_service.get_article_tags(db, article.id),
            "related_articles": articles_service.get_related_articles(db, article),
            "previous_article": previous_article,
            "next_article": next_article,
        },
    )


@router.get("/articles/id/{article_id}")
async def article_by_id(request: Request, article_id: int, db: Session = Depends(get_db)):
    try:
        article = articles_service.get_published_article(db, article_id=article_id)
    except NotFound as exc:
        request.state.session.flash("error", exc.message)
        return RedirectResponse(url="/", status_code=302)
    return show_article(request, db, article)


@router.get("/articles/{slug}")
async def article_by_slug(request: Request, slug: str, db: Session = Depends(get_db)):
    """Single article view; every render counts one view."""
    try:
        article = articles_service.get_published_article(db, slug=slug)
    except NotFound as exc:
        request.state.session.flash("error", exc.message)
        return RedirectResponse(url="/", status_code=302)
    return show_article(request, db, article)
