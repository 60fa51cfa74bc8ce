"""
Articles service for the knowledge base.
CRUD operations, bulk actions and view counting.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from kbcms.db.database import transaction
from kbcms.db.models import ARTICLE_STATUSES, Article, Category, Tag, article_tags, utcnow
from kbcms.errors import NoSelection, NotFound, SaveError, ValidationError
from kbcms.services.text import generate_excerpt, slugify

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 255
EXCERPT_MAX_LENGTH = 500
FALLBACK_SLUG = "article"


@dataclass
class ArticleInput:
    """Submitted article fields, as received from the editor form."""
    title: str
    content: str
    excerpt: str = ""
    category_id: Optional[int] = None
    status: str = "draft"
    featured: bool = False
    tag_ids: Sequence[int] = field(default_factory=list)


def normalize_status(status: Optional[str]) -> str:
    """Unrecognized statuses become drafts."""
    if status in ARTICLE_STATUSES:
        return status
    logger.debug(f"Unrecognized article status {status!r}, saving as draft")
    return "draft"


def slug_taken(db: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Article.id).where(Article.slug == slug)
    if exclude_id:
        stmt = stmt.where(Article.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


def unique_slug(db: Session, title: str, exclude_id: Optional[int] = None) -> str:
    """
    Slug for ``title`` that no other article uses.

    On collision a ``-<unix timestamp>`` suffix is appended, and a counter
    after that if two saves land in the same second.
    """
    base = slugify(title) or FALLBACK_SLUG
    if not slug_taken(db, base, exclude_id):
        return base

    candidate = f"{base}-{int(time.time())}"
    counter = 2
    stamped = candidate
    while slug_taken(db, candidate, exclude_id):
        candidate = f"{stamped}-{counter}"
        counter += 1
    return candidate


# =============================================================================
# READ OPERATIONS
# =============================================================================

def get_article(db: Session, article_id: int) -> Optional[Article]:
    """Get an article by ID."""
    return db.get(Article, article_id)


def get_article_by_slug(db: Session, slug: str) -> Optional[Article]:
    """Get an article by slug."""
    return db.execute(select(Article).where(Article.slug == slug)).scalars().first()


def get_published_article(
    db: Session,
    slug: Optional[str] = None,
    article_id: Optional[int] = None
) -> Article:
    """Published article by slug or id, for the public article page."""
    stmt = select(Article).where(Article.status == 'published')
    if slug:
        stmt = stmt.where(Article.slug == slug)
    elif article_id:
        stmt = stmt.where(Article.id == article_id)
    else:
        raise NotFound("Article not found.")

    article = db.execute(stmt).scalars().first()
    if article is None:
        raise NotFound("Article not found or not published.")
    return article


def get_article_tags(db: Session, article_id: int) -> list[Tag]:
    stmt = (
        select(Tag)
        .join(article_tags, Tag.id == article_tags.c.tag_id)
        .where(article_tags.c.article_id == article_id)
        .order_by(Tag.name)
    )
    return list(db.execute(stmt).scalars())


def get_related_articles(db: Session, article: Article, limit: int = 5) -> list[Article]:
    """Most viewed published articles in the same category."""
    if not article.category_id:
        return []
    stmt = (
        select(Article)
        .where(
            Article.category_id == article.category_id,
            Article.id != article.id,
            Article.status == 'published',
        )
        .order_by(Article.views.desc(), Article.created_at.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())


def get_adjacent_articles(db: Session, article: Article) -> tuple[Optional[Article], Optional[Article]]:
    """Previous and next published articles by id."""
    previous = db.execute(
        select(Article)
        .where(Article.id < article.id, Article.status == 'published')
        .order_by(Article.id.desc())
        .limit(1)
    ).scalars().first()
    following = db.execute(
        select(Article)
        .where(Article.id > article.id, Article.status == 'published')
        .order_by(Article.id.asc())
        .limit(1)
    ).scalars().first()
    return previous, following


# =============================================================================
# WRITE OPERATIONS
# =============================================================================

def validate_article(db: Session, data: ArticleInput) -> None:
    title = (data.title or "").strip()
    if not 1 <= len(title) <= TITLE_MAX_LENGTH:
        raise ValidationError("Title is required and must be between 1-255 characters.")

    if not (data.content or "").strip():
        raise ValidationError("Content is required.")

    if len((data.excerpt or "").strip()) > EXCERPT_MAX_LENGTH:
        raise ValidationError("Excerpt must be at most 500 characters.")

    if data.category_id is not None and db.get(Category, data.category_id) is None:
        raise ValidationError("Selected category does not exist.")


def save_article(
    db: Session,
    data: ArticleInput,
    mode: str = "create",
    article_id: Optional[int] = None,
    author_id: Optional[int] = None
) -> Article:
    """
    Create or update an article together with its full tag set.

    The article row and its tag associations are committed in one
    transaction; any storage failure rolls both back and raises SaveError.
    """
    if mode not in ("create", "update"):
        raise ValueError(f"Unknown save mode: {mode}")

    article = None
    if mode == "update":
        article = get_article(db, article_id) if article_id else None
        if article is None:
            raise NotFound("Article not found.")

    validate_article(db, data)

    title = data.title.strip()
    status = normalize_status(data.status)
    slug = unique_slug(db, title, exclude_id=article.id if article else None)
    excerpt = (data.excerpt or "").strip() or generate_excerpt(data.content)

    tags = []
    tag_ids = {int(tag_id) for tag_id in data.tag_ids or []}
    if tag_ids:
        # Unknown tag ids are skipped
        tags = list(db.execute(select(Tag).where(Tag.id.in_(tag_ids))).scalars())

    with transaction(db, "Error saving article", SaveError):
        if article is None:
            article = Article(author_id=author_id, views=0)
            db.add(article)
        else:
            article.updated_at = utcnow()

        article.title = title
        article.slug = slug
        article.content = data.content
        article.excerpt = excerpt
        article.category_id = data.category_id
        article.status = status
        article.featured = bool(data.featured)
        # Replaces the whole association set
        article.tags = tags

    db.refresh(article)
    logger.info(f"Article {article.id} {mode}d as {article.slug!r} ({status})")
    return article


def create_article(db: Session, data: ArticleInput, author_id: Optional[int] = None) -> Article:
    """Create a new article."""
    return save_article(db, data, mode="create", author_id=author_id)


def update_article(db: Session, article_id: int, data: ArticleInput) -> Article:
    """Update an existing article."""
    return save_article(db, data, mode="update", article_id=article_id)


def delete_article(db: Session, article_id: int) -> None:
    """Delete an article and its tag associations."""
    article = get_article(db, article_id)
    if article is None:
        raise NotFound("Invalid article ID.")

    # The ORM removes the article's article_tags rows along with it
    with transaction(db, "Error deleting article"):
        db.delete(article)

    logger.info(f"Article {article_id} deleted")


def _selected_ids(ids: Optional[Iterable[int]]) -> list[int]:
    selected = sorted({int(i) for i in ids or []})
    if not selected:
        raise NoSelection("No articles selected.")
    return selected


def bulk_update_status(db: Session, ids: Optional[Iterable[int]], status: str) -> int:
    """Set ``status`` on every selected article. Returns the number changed."""
    selected = _selected_ids(ids)
    if status not in ARTICLE_STATUSES:
        raise ValidationError("Invalid bulk action.")

    with transaction(db, "Error performing bulk action"):
        result = db.execute(
            update(Article)
            .where(Article.id.in_(selected))
            .values(status=status)
            .execution_options(synchronize_session=False)
        )

    db.expire_all()
    logger.info(f"Bulk status {status!r} applied to {result.rowcount} articles")
    return result.rowcount


def bulk_delete(db: Session, ids: Optional[Iterable[int]]) -> int:
    """Delete every selected article. Returns the number deleted."""
    selected = _selected_ids(ids)

    with transaction(db, "Error performing bulk action"):
        db.execute(delete(article_tags).where(article_tags.c.article_id.in_(selected)))
        result = db.execute(
            delete(Article)
            .where(Article.id.in_(selected))
            .execution_options(synchronize_session=False)
        )

    db.expire_all()
    logger.info(f"Bulk deleted {result.rowcount} articles")
    return result.rowcount


def increment_views(db: Session, article_id: int) -> None:
    """Count one public read; the increment happens inside the database."""
    with transaction(db, "Error updating view count"):
        db.execute(
            update(Article)
            .where(Article.id == article_id)
            .values(views=Article.views + 1)
            .execution_options(synchronize_session=False)
        )


def count_articles(db: Session, status: Optional[str] = None) -> int:
    stmt = select(func.count(Article.id))
    if status:
        stmt = stmt.where(Article.status == status)
    return db.execute(stmt).scalar_one()
