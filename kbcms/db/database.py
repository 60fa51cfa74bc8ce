"""
Database setup for the knowledge base CMS.

SQLite by default, any SQLAlchemy URL via settings. Engines and session
factories are built per application so tests can point at a temporary file.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Type

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from kbcms.errors import PersistenceError

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str) -> Engine:
    """Create an engine; SQLite gets foreign keys and cross-thread access."""
    if url.startswith("sqlite"):
        if url.startswith("sqlite:///") and not url.endswith(":memory:"):
            # Ensure data directory exists
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False}  # Needed for SQLite
        )
        event.listen(engine, "connect", _set_sqlite_pragma)
        return engine
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    from kbcms.db import models  # noqa: F401 - Import models to register them
    Base.metadata.create_all(bind=engine)


def get_db(request: Request) -> Iterator[Session]:
    """Dependency that provides a database session."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(
    db: Session,
    message: str,
    error: Type[PersistenceError] = PersistenceError,
) -> Iterator[Session]:
    """Commit the block's work, or roll it back and raise ``error``."""
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(f"{message}: rolled back")
        raise error(message, detail=str(exc)) from exc
