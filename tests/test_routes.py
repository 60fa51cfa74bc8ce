"""HTTP tests for the public site and the admin panel."""

from __future__ import annotations

from sqlalchemy import func, select

from kbcms.db import Article, Category
from tests.conftest import ADMIN_PASSWORD, csrf_token


def test_home_page(client, article_factory) -> None:
    article_factory("Welcome Article")
    response = client.get("/")
    assert response.status_code == 200
    assert "Welcome Article" in response.text
    assert response.headers["X-Frame-Options"] == "DENY"


def test_admin_requires_login(client) -> None:
    response = client.get("/admin/articles", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/admin/login?next=/admin/articles"


def test_login_with_wrong_password(client, admin_user) -> None:
    page = client.get("/admin/login")
    response = client.post(
        "/admin/login",
        data={"_token": csrf_token(page.text), "username": "admin", "password": "nope"},
    )
    assert response.status_code == 401
    assert "Invalid credentials" in response.text


def test_login_ignores_offsite_next(client, admin_user) -> None:
    page = client.get("/admin/login")
    response = client.post(
        "/admin/login",
        data={
            "_token": csrf_token(page.text),
            "username": "admin",
            "password": ADMIN_PASSWORD,
            "next": "https://evil.example/phish",
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/admin"


def test_login_and_logout(logged_in) -> None:
    dashboard = logged_in.get("/admin")
    assert dashboard.status_code == 200
    assert "Welcome back, admin!" in dashboard.text
    assert dashboard.headers["Cache-Control"] == "no-store"

    logged_in.get("/admin/logout")
    response = logged_in.get("/admin", follow_redirects=False)
    assert response.status_code == 302


def test_post_without_token_is_rejected(logged_in, db) -> None:
    response = logged_in.post(
        "/admin/articles/new",
        data={"title": "Sneaky", "content": "Body"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/admin/articles"
    assert db.execute(select(func.count(Article.id))).scalar_one() == 0

    listing = logged_in.get("/admin/articles")
    assert "Invalid security token" in listing.text


def test_create_article_through_form(logged_in, db, guides, tag_factory) -> None:
    python = tag_factory("Python")
    form = logged_in.get("/admin/articles/new")

    response = logged_in.post(
        "/admin/articles/new",
        data={
            "_token": csrf_token(form.text),
            "title": "Form Article",
            "content": "<p>Created from the editor.</p>",
            "excerpt": "",
            "category_id": str(guides.id),
            "status": "published",
            "featured": "1",
            "tags": [str(python.id)],
        },
        follow_redirects=False,
    )

    assert response.status_code == 303
    db.expire_all()
    article = db.execute(select(Article).where(Article.slug == "form-article")).scalars().one()
    assert response.headers["location"] == f"/admin/articles/{article.id}/edit"
    assert article.featured is True
    assert article.category_id == guides.id
    assert [tag.name for tag in article.tags] == ["Python"]
    assert article.author_name == "admin"


def test_article_form_errors_rerender(logged_in, db) -> None:
    form = logged_in.get("/admin/articles/new")
    response = logged_in.post(
        "/admin/articles/new",
        data={"_token": csrf_token(form.text), "title": "", "content": "Body"},
    )
    assert response.status_code == 400
    assert "Title is required" in response.text


def test_bulk_publish(logged_in, db, article_factory) -> None:
    ids = [article_factory(f"Draft {n}", status="draft").id for n in range(2)]
    listing = logged_in.get("/admin/articles")

    response = logged_in.post(
        "/admin/articles/bulk",
        data={
            "_token": csrf_token(listing.text),
            "bulk_action": "publish",
            "selected_articles": [str(i) for i in ids],
        },
    )

    assert "2 articles published." in response.text
    db.expire_all()
    assert {db.get(Article, i).status for i in ids} == {"published"}


def test_category_delete_guard(logged_in, db, guides, article_factory) -> None:
    article_factory("Inside", category_id=guides.id)
    listing = logged_in.get("/admin/categories")

    response = logged_in.post(
        f"/admin/categories/{guides.id}/delete",
        data={"_token": csrf_token(listing.text)},
    )

    assert "Cannot delete category. It contains 1 article(s)." in response.text
    db.expire_all()
    assert db.get(Category, guides.id) is not None


def test_users_page_is_admin_only(client, auth) -> None:
    auth.create_user("writer", "writer@kbsite.io", "password1", role="editor")
    page = client.get("/admin/login")
    client.post(
        "/admin/login",
        data={"_token": csrf_token(page.text), "username": "writer", "password": "password1"},
    )

    assert client.get("/admin").status_code == 200
    response = client.get("/admin/users", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/admin"


def test_create_user_through_form(logged_in) -> None:
    page = logged_in.get("/admin/users")
    response = logged_in.post(
        "/admin/users/new",
        data={
            "_token": csrf_token(page.text),
            "username": "newbie",
            "email": "newbie@kbsite.io",
            "password": "password1",
            "role": "viewer",
        },
    )
    assert "User created successfully." in response.text
    assert "newbie@kbsite.io" in response.text


def test_public_article_counts_views(client, db, article_factory) -> None:
    article = article_factory("Read Me", content="<p>Some useful text.</p>")

    first = client.get("/articles/read-me")
    client.get(f"/articles/id/{article.id}")

    assert first.status_code == 200
    assert "Some useful text." in first.text
    db.refresh(article)
    assert article.views == 2


def test_draft_article_is_not_public(client, article_factory) -> None:
    article_factory("Secret Plans", status="draft")
    response = client.get("/articles/secret-plans", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/"


def test_browse_by_category(client, guides, article_factory) -> None:
    article_factory("Guide One", category_id=guides.id)
    article_factory("Elsewhere")

    response = client.get("/browse", params={"category": "guides"})
    assert "Guide One" in response.text
    assert "Elsewhere" not in response.text

    missing = client.get("/browse", params={"category": "nope"}, follow_redirects=False)
    assert missing.headers["location"] == "/browse"


def test_search_page_highlights(client, article_factory) -> None:
    article_factory("Docker Basics", content="<p>Running docker containers.</p>")

    response = client.get("/search", params={"q": "docker"})

    assert response.status_code == 200
    assert "1 result(s)" in response.text
    assert "<mark>Docker</mark> Basics" in response.text


def test_search_page_without_query(client) -> None:
    response = client.get("/search")
    assert response.status_code == 200
    assert "Enter a search term" in response.text


def _log_in_as(client, username: str, password: str, next: str = "/admin"):
    page = client.get("/admin/login")
    return client.post(
        "/admin/login",
        data={
            "_token": csrf_token(page.text),
            "username": username,
            "password": password,
            "next": next,
        },
        follow_redirects=False,
    )


def test_viewer_login_lands_on_public_site(client, auth) -> None:
    auth.create_user("reader", "reader@kbsite.io", "password1", role="viewer")

    response = _log_in_as(client, "reader", "password1")

    assert response.status_code == 303
    assert response.headers["location"] == "/"


def test_viewer_is_sent_away_from_admin_pages(client, auth) -> None:
    auth.create_user("reader", "reader@kbsite.io", "password1", role="viewer")
    _log_in_as(client, "reader", "password1")

    response = client.get("/admin", follow_redirects=True)

    assert response.status_code == 200
    assert str(response.url).endswith("/")
    assert len(response.history) == 1
    assert "You do not have permission to access that page." in response.text

    login_page = client.get("/admin/login?next=/admin/articles", follow_redirects=False)
    assert login_page.status_code == 302
    assert login_page.headers["location"] == "/"


def test_logged_in_admin_skips_login_page(logged_in) -> None:
    response = logged_in.get("/admin/login?next=/admin/tags", follow_redirects=False)
    assert response.headers["location"] == "/admin/tags"


def test_security_headers(client) -> None:
    response = client.get("/")
    policy = response.headers["Content-Security-Policy"]
    assert "default-src 'self'" in policy
    assert "frame-ancestors 'none'" in policy
    assert "Strict-Transport-Security" not in response.headers
    assert "Cache-Control" not in response.headers
