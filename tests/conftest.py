"""Shared test fixtures."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from kbcms.config import Settings
from kbcms.db import Category, Tag, User
from kbcms.db.database import init_db, make_engine, make_session_factory
from kbcms.main import create_app
from kbcms.security.sessions import ServerSession
from kbcms.services.articles import ArticleInput, create_article
from kbcms.services.auth import AuthService
from kbcms.services.categories import save_category
from kbcms.services.tags import save_tag

ADMIN_PASSWORD = "correct-horse"

_TOKEN_FIELD = re.compile(r'name="_token" value="([0-9a-f]+)"')


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test settings on a temporary SQLite file."""
    return Settings(
        _env_file=None,
        database_url=None,
        db_host=None,
        db_path=tmp_path / "kb.db",
        secret_key="test-secret-key-not-real",
        rate_limit_enabled=False,
        articles_per_page=5,
        search_results_per_page=5,
        debug=False,
    )


@pytest.fixture
def engine(settings: Settings) -> Iterator[Engine]:
    engine = make_engine(settings.sqlalchemy_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    """A database session on the test database."""
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def auth(db: Session, settings: Settings) -> AuthService:
    """Auth service bound to a fresh, unsaved session."""
    return AuthService(db, ServerSession(), settings)


@pytest.fixture
def admin_user(auth: AuthService) -> User:
    return auth.create_user("admin", "admin@kbsite.io", ADMIN_PASSWORD, role="admin")


@pytest.fixture
def guides(db: Session) -> Category:
    return save_category(db, "Guides", "How-to material")


@pytest.fixture
def tag_factory(db: Session) -> Callable[[str], Tag]:
    def make(name: str) -> Tag:
        return save_tag(db, name)
    return make


@pytest.fixture
def article_factory(db: Session) -> Callable[..., object]:
    """Create articles with sensible defaults; keyword arguments override them."""
    def make(title: str = "Getting Started", **fields):
        values = {"content": f"<p>{title} body text.</p>", "status": "published"}
        values.update(fields)
        author_id = values.pop("author_id", None)
        return create_article(db, ArticleInput(title=title, **values), author_id=author_id)
    return make


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def csrf_token(html: str) -> str:
    """Pull the CSRF token out of a rendered form."""
    match = _TOKEN_FIELD.search(html)
    assert match, "page has no CSRF field"
    return match.group(1)


@pytest.fixture
def token_from() -> Callable[[str], str]:
    return csrf_token


@pytest.fixture
def logged_in(client: TestClient, admin_user: User) -> TestClient:
    """A client holding an authenticated admin session."""
    page = client.get("/admin/login")
    response = client.post(
        "/admin/login",
        data={
            "_token": csrf_token(page.text),
            "username": admin_user.username,
            "password": ADMIN_PASSWORD,
            "next": "/admin",
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    return client
