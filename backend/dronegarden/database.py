"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine (SQLite by
default, see `DATABASE_URL`) and provides the session dependency used by
the API routes and tests.
"""

from sqlmodel import SQLModel, create_engine, Session

from .config import settings

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    Intended for local development and tests; production deployments
    should rely on a proper migration tool instead.
    """
    from . import models  # noqa: F401  (registers the tables)

    SQLModel.metadata.create_all(engine)


def get_session():
    """Request-scoped session dependency; closed when the request ends."""
    with Session(engine) as session:
        yield session
