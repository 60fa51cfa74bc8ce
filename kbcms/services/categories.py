"""
Categories service: CRUD with name/slug uniqueness and a referential delete guard.
"""

import logging
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from kbcms.db.database import transaction
from kbcms.db.models import Article, Category, utcnow
from kbcms.errors import DuplicateName, NotEmpty, NotFound, SaveError, ValidationError
from kbcms.services.text import slugify

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 1000


def get_category(db: Session, category_id: int) -> Optional[Category]:
    return db.get(Category, category_id)


def get_category_by_slug(db: Session, slug: str) -> Optional[Category]:
    return db.execute(select(Category).where(Category.slug == slug)).scalars().first()


def article_count(db: Session, category_id: int) -> int:
    """Number of articles (any status) filed under the category."""
    stmt = select(func.count(Article.id)).where(Article.category_id == category_id)
    return db.execute(stmt).scalar_one()


def list_categories(db: Session) -> list[tuple[Category, int]]:
    """All categories with their total article counts, by name."""
    stmt = (
        select(Category, func.count(Article.id))
        .outerjoin(Article, Article.category_id == Category.id)
        .group_by(Category.id)
        .order_by(Category.name)
    )
    return [(category, count) for category, count in db.execute(stmt).all()]


def list_public_categories(db: Session, limit: Optional[int] = None) -> list[tuple[Category, int]]:
    """Categories that have at least one published article, with that count."""
    published = func.count(Article.id)
    stmt = (
        select(Category, published)
        .outerjoin(Article, and_(Article.category_id == Category.id, Article.status == 'published'))
        .group_by(Category.id)
        .having(published > 0)
        .order_by(Category.name)
    )
    if limit:
        stmt = stmt.limit(limit)
    return [(category, count) for category, count in db.execute(stmt).all()]


def save_category(
    db: Session,
    name: str,
    description: str = "",
    mode: str = "create",
    category_id: Optional[int] = None
) -> Category:
    """Create or update a category. Name and slug clashes are rejected."""
    category = None
    if mode == "update":
        category = get_category(db, category_id) if category_id else None
        if category is None:
            raise NotFound("Category not found.")

    name = (name or "").strip()
    description = (description or "").strip()

    if not 1 <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError("Category name is required and must be between 1-100 characters.")
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError("Description must be at most 1000 characters.")

    slug = slugify(name)
    if not slug:
        raise ValidationError("Category name must contain letters or digits.")

    stmt = select(Category.id).where(or_(Category.name == name, Category.slug == slug))
    if category is not None:
        stmt = stmt.where(Category.id != category.id)
    if db.execute(stmt.limit(1)).first() is not None:
        raise DuplicateName("A category with this name already exists.")

    with transaction(db, "Error saving category", SaveError):
        if category is None:
            category = Category()
            db.add(category)
        else:
            category.updated_at = utcnow()
        category.name = name
        category.slug = slug
        category.description = description

    db.refresh(category)
    logger.info(f"Category {category.id} {mode}d as {slug!r}")
    return category


def delete_category(db: Session, category_id: int) -> None:
    """Delete an empty category; refuse while articles still reference it."""
    category = get_category(db, category_id)
    if category is None:
        raise NotFound("Invalid category ID.")

    count = article_count(db, category_id)
    if count > 0:
        raise NotEmpty(
            f"Cannot delete category. It contains {count} article(s). "
            "Please move or delete the articles first.",
            count=count,
        )

    with transaction(db, "Error deleting category"):
        db.delete(category)

    logger.info(f"Category {category_id} deleted")
