from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from kbcms.db.database import get_db
from kbcms.routes.pages import parse_id, render
from kbcms.services import categories as categories_service
from kbcms.services import search as search_service

router = APIRouter(tags=["search"])


@router.get("/search")
async def search(
    request: Request,
    q: str = "",
    category: str = "",
    sort: str = "relevance",
    page: int = 1,
    db: Session = Depends(get_db)
):
    """Search published articles by title, content and excerpt."""
    settings = request.app.state.settings

    if sort not in search_service.SEARCH_SORTS:
        sort = "relevance"

    results = search_service.search_articles(
        db,
        q,
        category_id=parse_id(category),
        sort=sort,
        page=page,
        per_page=settings.search_results_per_page,
    )

    return render(
        request,
        "search.html",
        {
            "results": results,
            "query": results.query,
            "categories": categories_service.list_public_categories(db),
            "selected_category": parse_id(category),
            "sort": sort,
            "sorts": search_service.SEARCH_SORTS,
        },
    )
