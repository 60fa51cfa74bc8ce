"""
Listing and search for articles.

Search is a conjunction of substring matches: every whitespace-separated
term must appear in the title, content or excerpt. Results are ordered by a
fixed tie-break chain rather than a score.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session, selectinload

from kbcms.db.models import ARTICLE_STATUSES, Article, Tag
from kbcms.services.pagination import Pagination, paginate
from kbcms.services.text import search_excerpt

BROWSE_SORTS = ("recent", "popular", "alphabetical")
SEARCH_SORTS = ("relevance",) + BROWSE_SORTS

DEFAULT_PER_PAGE = 12
SEARCH_PER_PAGE = 10
HIT_TAG_LIMIT = 3


@dataclass
class SearchHit:
    article: Article
    excerpt: str
    tags: list[Tag] = field(default_factory=list)


@dataclass
class SearchResults:
    query: str
    hits: list[SearchHit]
    pagination: Pagination
    performed: bool

    @property
    def total(self) -> int:
        return self.pagination.total_items


def _where(stmt, conditions):
    for condition in conditions:
        stmt = stmt.where(condition)
    return stmt


def _page(db: Session, conditions: list, order_by: tuple, page: int, per_page: int):
    """Count, clamp the page, then fetch that page of articles."""
    total = db.execute(_where(select(func.count(Article.id)), conditions)).scalar_one()
    pagination = paginate(page, total, per_page)

    items = []
    if total:
        stmt = (
            _where(select(Article), conditions)
            .options(selectinload(Article.category), selectinload(Article.author))
            .order_by(*order_by)
            .offset(pagination.offset)
            .limit(per_page)
        )
        items = list(db.execute(stmt).scalars())

    return items, pagination


def sort_order(sort: str) -> tuple:
    if sort == "popular":
        return (Article.views.desc(), Article.created_at.desc(), Article.id.desc())
    if sort == "alphabetical":
        return (Article.title.asc(), Article.id.asc())
    return (Article.created_at.desc(), Article.id.desc())


def relevance_order(query: str) -> tuple:
    """Whole query in title, whole query as title prefix, views, recency."""
    return (
        case((Article.title.icontains(query, autoescape=True), 1), else_=0).desc(),
        case((Article.title.istartswith(query, autoescape=True), 1), else_=0).desc(),
        Article.views.desc(),
        Article.created_at.desc(),
        Article.id.desc(),
    )


def list_articles(
    db: Session,
    status: Optional[str] = None,
    category_id: Optional[int] = None,
    query: Optional[str] = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE
) -> tuple[list[Article], Pagination]:
    """Admin listing, most recently updated first.

    Returns:
        Tuple of (articles, pagination); ``pagination.total_items`` is the
        total number of matching articles.
    """
    conditions = []
    if status in ARTICLE_STATUSES:
        conditions.append(Article.status == status)
    if category_id:
        conditions.append(Article.category_id == category_id)
    if query and query.strip():
        text = query.strip()
        conditions.append(or_(
            Article.title.icontains(text, autoescape=True),
            Article.content.icontains(text, autoescape=True),
        ))

    order_by = (Article.updated_at.desc(), Article.id.desc())
    return _page(db, conditions, order_by, page, per_page)


def browse_articles(
    db: Session,
    category_id: Optional[int] = None,
    featured: bool = False,
    sort: str = "recent",
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE
) -> tuple[list[Article], Pagination]:
    """Public listing of published articles."""
    conditions = [Article.status == 'published']
    if category_id:
        conditions.append(Article.category_id == category_id)
    if featured:
        conditions.append(Article.featured.is_(True))

    return _page(db, conditions, sort_order(sort), page, per_page)


def search_articles(
    db: Session,
    query: Optional[str],
    category_id: Optional[int] = None,
    sort: str = "relevance",
    page: int = 1,
    per_page: int = SEARCH_PER_PAGE
) -> SearchResults:
    """Search published articles.

    A blank query performs no search and returns no hits.
    """
    query = (query or "").strip()
    terms = query.split()
    if not terms:
        return SearchResults(query="", hits=[], pagination=paginate(1, 0, per_page), performed=False)

    conditions = [Article.status == 'published']
    conditions.append(and_(*[
        or_(
            Article.title.icontains(term, autoescape=True),
            Article.content.icontains(term, autoescape=True),
            Article.excerpt.icontains(term, autoescape=True),
        )
        for term in terms
    ]))
    if category_id:
        conditions.append(Article.category_id == category_id)

    order_by = relevance_order(query) if sort not in BROWSE_SORTS else sort_order(sort)
    articles, pagination = _page(db, conditions, order_by, page, per_page)

    hits = [
        SearchHit(
            article=article,
            excerpt=search_excerpt(article.content, query),
            tags=list(article.tags[:HIT_TAG_LIMIT]),
        )
        for article in articles
    ]
    return SearchResults(query=query, hits=hits, pagination=pagination, performed=True)
