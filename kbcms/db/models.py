"""
SQLAlchemy models for the knowledge base.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship

from kbcms.db.database import Base

ARTICLE_STATUSES = ("draft", "published", "archived")


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


article_tags = Table(
    "article_tags",
    Base.metadata,
    Column("article_id", Integer, ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default='editor', nullable=False)
    created_at = Column(DateTime, default=utcnow)

    articles = relationship("Article", back_populates="author")

    def __repr__(self):
        return f"<User {self.username}>"


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    articles = relationship("Article", back_populates="category")

    def __repr__(self):
        return f"<Category {self.slug}>"


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    articles = relationship("Article", secondary=article_tags, back_populates="tags")

    def __repr__(self):
        return f"<Tag {self.slug}>"


class Article(Base):
    """
    Knowledge base article.
    ``updated_at`` is set by content saves only, never by view counting.
    """
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    content = Column(Text, nullable=False)
    excerpt = Column(Text)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default='draft', nullable=False)
    featured = Column(Boolean, default=False, nullable=False)
    views = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    category = relationship("Category", back_populates="articles")
    author = relationship("User", back_populates="articles")
    tags = relationship(
        "Tag",
        secondary=article_tags,
        back_populates="articles",
        order_by="Tag.name",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'published', 'archived')",
            name='check_article_status'
        ),
        Index('idx_articles_status', 'status'),
        Index('idx_articles_category', 'category_id'),
        Index('idx_articles_created_at', 'created_at'),
    )

    @property
    def category_name(self):
        return self.category.name if self.category else None

    @property
    def author_name(self):
        return self.author.username if self.author else None

    def __repr__(self):
        return f"<Article {self.slug}>"


class SessionRecord(Base):
    """Server-side session data, keyed by the id carried in the signed cookie."""
    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True)
    data = Column(Text, nullable=False, default="{}")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<SessionRecord {self.id[:8]}>"
