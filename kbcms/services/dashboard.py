"""
Aggregates for the public home page and the admin dashboard.
"""

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from kbcms.db.models import Article, Category, Tag
from kbcms.services.articles import count_articles
from kbcms.services.categories import list_public_categories


def _articles(db: Session, *conditions, order_by, limit: int) -> list[Article]:
    stmt = select(Article).options(selectinload(Article.category), selectinload(Article.author))
    for condition in conditions:
        stmt = stmt.where(condition)
    return list(db.execute(stmt.order_by(*order_by).limit(limit)).scalars())


def _total_views(db: Session, published_only: bool = False) -> int:
    stmt = select(func.coalesce(func.sum(Article.views), 0))
    if published_only:
        stmt = stmt.where(Article.status == 'published')
    return db.execute(stmt).scalar_one()


def home_page_data(db: Session) -> dict:
    published = Article.status == 'published'
    return {
        "featured_articles": _articles(
            db, published, Article.featured.is_(True),
            order_by=(Article.created_at.desc(), Article.id.desc()), limit=6,
        ),
        "recent_articles": _articles(
            db, published,
            order_by=(Article.created_at.desc(), Article.id.desc()), limit=8,
        ),
        "popular_articles": _articles(
            db, published, Article.views > 0,
            order_by=(Article.views.desc(), Article.id.desc()), limit=6,
        ),
        "categories": list_public_categories(db, limit=8),
        "stats": {
            "total_articles": count_articles(db, status="published"),
            "total_categories": db.execute(select(func.count(Category.id))).scalar_one(),
            "total_views": _total_views(db, published_only=True),
        },
    }


def dashboard_data(db: Session) -> dict:
    return {
        "stats": {
            "total_articles": count_articles(db),
            "published_articles": count_articles(db, status="published"),
            "draft_articles": count_articles(db, status="draft"),
            "total_categories": db.execute(select(func.count(Category.id))).scalar_one(),
            "total_tags": db.execute(select(func.count(Tag.id))).scalar_one(),
            "total_views": _total_views(db),
        },
        "recent_articles": _articles(
            db, order_by=(Article.created_at.desc(), Article.id.desc()), limit=5,
        ),
        "popular_articles": _articles(
            db, Article.status == 'published',
            order_by=(Article.views.desc(), Article.id.desc()), limit=5,
        ),
    }
