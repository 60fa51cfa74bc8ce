"""Database package for the knowledge base CMS."""

from kbcms.db.database import Base, get_db, init_db, make_engine, make_session_factory, transaction
from kbcms.db.models import Article, Category, SessionRecord, Tag, User, article_tags

__all__ = [
    "Base",
    "get_db",
    "init_db",
    "make_engine",
    "make_session_factory",
    "transaction",
    "Article",
    "Category",
    "SessionRecord",
    "Tag",
    "User",
    "article_tags",
]
