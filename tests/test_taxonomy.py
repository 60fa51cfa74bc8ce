"""Tests for categories and tags."""

from __future__ import annotations

import pytest

from kbcms.db import Category, Tag
from kbcms.errors import DuplicateName, NoSelection, NotEmpty, NotFound, ValidationError
from kbcms.services import categories as categories_service
from kbcms.services import tags as tags_service
from kbcms.services.articles import get_article


def test_category_slug_from_name(guides) -> None:
    assert guides.slug == "guides"
    assert guides.description == "How-to material"


def test_duplicate_category_name_rejected(db, guides) -> None:
    with pytest.raises(DuplicateName):
        categories_service.save_category(db, "Guides")


def test_category_slug_clash_rejected(db, guides) -> None:
    with pytest.raises(DuplicateName):
        categories_service.save_category(db, "Guides!")


def test_category_rename_to_own_name(db, guides) -> None:
    renamed = categories_service.save_category(
        db, "Guides", "Updated", mode="update", category_id=guides.id
    )
    assert renamed.description == "Updated"


@pytest.mark.parametrize("name", ["", "   ", "n" * 101, "***"])
def test_invalid_category_names(db, name) -> None:
    with pytest.raises(ValidationError):
        categories_service.save_category(db, name)


def test_update_missing_category(db) -> None:
    with pytest.raises(NotFound):
        categories_service.save_category(db, "Ghost", mode="update", category_id=77)


def test_category_with_articles_cannot_be_deleted(db, guides, article_factory) -> None:
    article_factory("One", category_id=guides.id)
    article_factory("Two", category_id=guides.id, status="draft")

    with pytest.raises(NotEmpty) as excinfo:
        categories_service.delete_category(db, guides.id)

    assert excinfo.value.count == 2
    assert "contains 2 article(s)" in excinfo.value.message
    assert db.get(Category, guides.id) is not None


def test_empty_category_deleted(db, guides) -> None:
    categories_service.delete_category(db, guides.id)
    assert db.get(Category, guides.id) is None


def test_delete_missing_category(db) -> None:
    with pytest.raises(NotFound):
        categories_service.delete_category(db, 5)


def test_category_listings(db, guides, article_factory) -> None:
    empty = categories_service.save_category(db, "Empty")
    article_factory("Visible", category_id=guides.id)
    article_factory("Hidden", category_id=guides.id, status="draft")

    assert categories_service.list_categories(db) == [(empty, 0), (guides, 2)]
    assert categories_service.list_public_categories(db) == [(guides, 1)]


def test_tag_create_and_rename(db, tag_factory) -> None:
    tag = tag_factory("Web Dev")
    assert tag.slug == "web-dev"

    renamed = tags_service.save_tag(db, "Web Development", mode="update", tag_id=tag.id)
    assert renamed.slug == "web-development"


def test_duplicate_tag_rejected(db, tag_factory) -> None:
    tag_factory("Python")
    with pytest.raises(DuplicateName):
        tags_service.save_tag(db, "python")


def test_tag_name_too_long(db) -> None:
    with pytest.raises(ValidationError):
        tags_service.save_tag(db, "t" * 51)


def test_deleting_tag_keeps_articles(db, tag_factory, article_factory) -> None:
    python, sql = tag_factory("Python"), tag_factory("SQL")
    article = article_factory("Tagged", tag_ids=[python.id, sql.id])

    tags_service.delete_tag(db, python.id)

    db.expire_all()
    kept = get_article(db, article.id)
    assert kept is not None
    assert [tag.name for tag in kept.tags] == ["SQL"]
    assert tags_service.list_tags(db) == [(sql, 1)]


def test_bulk_delete_tags(db, tag_factory, article_factory) -> None:
    a, b, c = tag_factory("A"), tag_factory("B"), tag_factory("C")
    article = article_factory("Tagged", tag_ids=[a.id, b.id, c.id])

    assert tags_service.bulk_delete_tags(db, [a.id, b.id]) == 2
    assert [tag.name for tag in get_article(db, article.id).tags] == ["C"]
    assert db.get(Tag, a.id) is None


def test_bulk_delete_tags_requires_selection(db) -> None:
    with pytest.raises(NoSelection):
        tags_service.bulk_delete_tags(db, [])


def test_delete_missing_tag(db) -> None:
    with pytest.raises(NotFound):
        tags_service.delete_tag(db, 1)
