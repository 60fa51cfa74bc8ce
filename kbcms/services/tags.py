"""
Tags service. Deleting a tag detaches it from articles but keeps the articles.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from kbcms.db.database import transaction
from kbcms.db.models import Tag, article_tags
from kbcms.errors import DuplicateName, NoSelection, NotFound, SaveError, ValidationError
from kbcms.services.text import slugify

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 50


def get_tag(db: Session, tag_id: int) -> Optional[Tag]:
    return db.get(Tag, tag_id)


def list_tags(db: Session) -> list[tuple[Tag, int]]:
    """All tags with the number of articles using them, by name."""
    stmt = (
        select(Tag, func.count(article_tags.c.article_id))
        .outerjoin(article_tags, article_tags.c.tag_id == Tag.id)
        .group_by(Tag.id)
        .order_by(Tag.name)
    )
    return [(tag, count) for tag, count in db.execute(stmt).all()]


def all_tags(db: Session) -> list[Tag]:
    return list(db.execute(select(Tag).order_by(Tag.name)).scalars())


def save_tag(db: Session, name: str, mode: str = "create", tag_id: Optional[int] = None) -> Tag:
    """Create or rename a tag. Name and slug clashes are rejected."""
    tag = None
    if mode == "update":
        tag = get_tag(db, tag_id) if tag_id else None
        if tag is None:
            raise NotFound("Tag not found.")

    name = (name or "").strip()
    if not 1 <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError("Tag name is required and must be between 1-50 characters.")

    slug = slugify(name)
    if not slug:
        raise ValidationError("Tag name must contain letters or digits.")

    stmt = select(Tag.id).where(or_(Tag.name == name, Tag.slug == slug))
    if tag is not None:
        stmt = stmt.where(Tag.id != tag.id)
    if db.execute(stmt.limit(1)).first() is not None:
        raise DuplicateName("A tag with this name already exists.")

    with transaction(db, "Error saving tag", SaveError):
        if tag is None:
            tag = Tag()
            db.add(tag)
        tag.name = name
        tag.slug = slug

    db.refresh(tag)
    logger.info(f"Tag {tag.id} {mode}d as {slug!r}")
    return tag


def delete_tag(db: Session, tag_id: int) -> None:
    tag = get_tag(db, tag_id)
    if tag is None:
        raise NotFound("Invalid tag ID.")

    # The ORM removes the tag's article_tags rows along with it
    with transaction(db, "Error deleting tag"):
        db.delete(tag)

    logger.info(f"Tag {tag_id} deleted")


def bulk_delete_tags(db: Session, ids: Optional[Iterable[int]]) -> int:
    selected = sorted({int(i) for i in ids or []})
    if not selected:
        raise NoSelection("No tags selected.")

    with transaction(db, "Error deleting tags"):
        db.execute(delete(article_tags).where(article_tags.c.tag_id.in_(selected)))
        result = db.execute(
            delete(Tag).where(Tag.id.in_(selected)).execution_options(synchronize_session=False)
        )

    db.expire_all()
    logger.info(f"Bulk deleted {result.rowcount} tags")
    return result.rowcount
