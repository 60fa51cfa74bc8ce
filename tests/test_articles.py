"""Tests for the article service."""

from __future__ import annotations

import re
import threading

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from kbcms.db import Article, Tag, article_tags
from kbcms.db.database import make_session_factory
from kbcms.errors import NoSelection, NotFound, SaveError, ValidationError, public_message
from kbcms.services import articles as articles_service
from kbcms.services.articles import ArticleInput


def _article_count(db) -> int:
    return db.execute(select(func.count(Article.id))).scalar_one()


def test_same_title_gets_disambiguated_slug(article_factory) -> None:
    first = article_factory("Setup Guide")
    second = article_factory("Setup Guide")
    third = article_factory("Setup Guide")

    assert first.slug == "setup-guide"
    assert re.fullmatch(r"setup-guide-\d+", second.slug)
    assert third.slug.startswith("setup-guide-")
    assert len({first.slug, second.slug, third.slug}) == 3


def test_update_keeps_own_slug(db, article_factory) -> None:
    article = article_factory("Setup Guide")
    updated = articles_service.update_article(
        db, article.id, ArticleInput(title="Setup Guide", content="Revised")
    )
    assert updated.slug == "setup-guide"
    assert updated.content == "Revised"


def test_retitle_changes_slug(db, article_factory) -> None:
    article = article_factory("Setup Guide")
    updated = articles_service.update_article(
        db, article.id, ArticleInput(title="Install Guide", content="Body")
    )
    assert updated.slug == "install-guide"


def test_title_without_letters_uses_fallback_slug(article_factory) -> None:
    assert article_factory("!!!").slug == "article"


def test_excerpt_generated_from_content(article_factory) -> None:
    article = article_factory("Excerpts", content="<p>" + "plain words " * 40 + "</p>")
    assert article.excerpt.endswith("...")
    assert "<p>" not in article.excerpt


def test_explicit_excerpt_is_kept(article_factory) -> None:
    article = article_factory("Excerpts", excerpt="  Hand written.  ")
    assert article.excerpt == "Hand written."


def test_unknown_status_saved_as_draft(article_factory) -> None:
    assert article_factory("Odd", status="pending-review").status == "draft"


def test_author_recorded(article_factory, admin_user) -> None:
    article = article_factory("Owned", author_id=admin_user.id)
    assert article.author_name == "admin"


@pytest.mark.parametrize(
    "fields",
    [
        {"title": "   ", "content": "Body"},
        {"title": "x" * 256, "content": "Body"},
        {"title": "Fine", "content": "  "},
        {"title": "Fine", "content": "Body", "excerpt": "e" * 501},
        {"title": "Fine", "content": "Body", "category_id": 9999},
    ],
)
def test_invalid_input_is_rejected_without_writes(db, fields) -> None:
    with pytest.raises(ValidationError):
        articles_service.create_article(db, ArticleInput(**fields))
    assert _article_count(db) == 0


def test_tags_replaced_as_a_set(db, article_factory, tag_factory) -> None:
    python, sql, web = tag_factory("Python"), tag_factory("SQL"), tag_factory("Web")
    article = article_factory("Tagged", tag_ids=[python.id, sql.id])
    assert [tag.name for tag in article.tags] == ["Python", "SQL"]

    data = ArticleInput(title="Tagged", content="Body", tag_ids=[web.id, 4242])
    article = articles_service.update_article(db, article.id, data)
    assert [tag.name for tag in articles_service.get_article_tags(db, article.id)] == ["Web"]

    article = articles_service.update_article(db, article.id, ArticleInput(title="Tagged", content="Body"))
    assert articles_service.get_article_tags(db, article.id) == []


def test_update_missing_article(db) -> None:
    with pytest.raises(NotFound):
        articles_service.update_article(db, 404, ArticleInput(title="Nope", content="Body"))


def test_unknown_save_mode(db) -> None:
    with pytest.raises(ValueError):
        articles_service.save_article(db, ArticleInput(title="A", content="B"), mode="upsert")


def test_delete_removes_tag_links_but_not_tags(db, article_factory, tag_factory) -> None:
    tag = tag_factory("Python")
    article = article_factory("Doomed", tag_ids=[tag.id])

    articles_service.delete_article(db, article.id)

    assert articles_service.get_article(db, article.id) is None
    assert db.execute(select(func.count()).select_from(article_tags)).scalar_one() == 0
    assert db.get(Tag, tag.id) is not None


def test_delete_missing_article(db) -> None:
    with pytest.raises(NotFound):
        articles_service.delete_article(db, 12345)


def test_get_published_article(db, article_factory) -> None:
    article_factory("Public Page")
    article_factory("Hidden Page", status="draft")

    assert articles_service.get_published_article(db, slug="public-page").title == "Public Page"
    with pytest.raises(NotFound):
        articles_service.get_published_article(db, slug="hidden-page")
    with pytest.raises(NotFound):
        articles_service.get_published_article(db)


def test_bulk_requires_selection(db) -> None:
    with pytest.raises(NoSelection):
        articles_service.bulk_update_status(db, [], "published")
    with pytest.raises(NoSelection):
        articles_service.bulk_delete(db, None)


def test_bulk_status_change(db, article_factory) -> None:
    ids = [article_factory(f"Draft {n}", status="draft").id for n in range(3)]

    changed = articles_service.bulk_update_status(db, ids[:2], "published")

    assert changed == 2
    assert articles_service.count_articles(db, status="published") == 2
    assert articles_service.get_article(db, ids[2]).status == "draft"


def test_bulk_status_rejects_unknown_status(db, article_factory) -> None:
    article = article_factory("Draft", status="draft")
    with pytest.raises(ValidationError):
        articles_service.bulk_update_status(db, [article.id], "deleted")


def test_bulk_delete(db, article_factory, tag_factory) -> None:
    tag = tag_factory("Python")
    ids = [article_factory(f"Bulk {n}", tag_ids=[tag.id]).id for n in range(3)]

    assert articles_service.bulk_delete(db, ids[:2]) == 2
    assert _article_count(db) == 1
    assert [a.id for a in tag.articles] == [ids[2]]


def test_related_and_adjacent(db, guides, article_factory) -> None:
    first = article_factory("First", category_id=guides.id)
    middle = article_factory("Middle", category_id=guides.id)
    last = article_factory("Last", category_id=guides.id)
    article_factory("Unrelated")
    article_factory("Draft sibling", category_id=guides.id, status="draft")

    related = articles_service.get_related_articles(db, middle)
    assert {a.id for a in related} == {first.id, last.id}

    previous, following = articles_service.get_adjacent_articles(db, middle)
    assert previous.id == first.id
    assert following.id == last.id


def test_view_increments_do_not_bump_updated_at(db, article_factory) -> None:
    article = article_factory("Counted")
    stamp = article.updated_at

    articles_service.increment_views(db, article.id)
    db.refresh(article)

    assert article.views == 1
    assert article.updated_at == stamp


def test_concurrent_view_increments_are_not_lost(engine, db, article_factory) -> None:
    article = article_factory("Popular")
    factory = make_session_factory(engine)
    errors = []

    def read_once() -> None:
        with factory() as session:
            try:
                articles_service.increment_views(session, article.id)
            except Exception as exc:  # surfaced below
                errors.append(exc)

    threads = [threading.Thread(target=read_once) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    db.refresh(article)
    assert errors == []
    assert article.views == 3


def test_failed_save_rolls_back_article_and_tags(db, article_factory, tag_factory, monkeypatch) -> None:
    python, sql = tag_factory("Python"), tag_factory("SQL")
    article = article_factory("Stable Title", tag_ids=[python.id])

    def flush_then_fail() -> None:
        # Row and tag changes reach the database before the commit fails
        db.flush()
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", flush_then_fail)
    with pytest.raises(SaveError) as excinfo:
        articles_service.update_article(
            db, article.id, ArticleInput(title="Changed Title", content="New", tag_ids=[sql.id])
        )
    monkeypatch.undo()

    assert excinfo.value.message == "Error saving article"
    assert "disk I/O error" in excinfo.value.detail

    db.expire_all()
    kept = articles_service.get_article(db, article.id)
    assert kept.title == "Stable Title"
    assert kept.slug == "stable-title"
    assert [tag.name for tag in articles_service.get_article_tags(db, article.id)] == ["Python"]


def test_public_message_hides_detail_outside_debug() -> None:
    exc = SaveError("Error saving article", detail="UNIQUE constraint failed")
    assert public_message(exc) == "Error saving article"
    assert public_message(exc, debug=True) == "Error saving article: UNIQUE constraint failed"
    assert public_message(NotFound(), debug=True) == "Not found."
