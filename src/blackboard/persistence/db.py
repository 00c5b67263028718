"""Database connectivity and connection helpers.

Submissions are stored through SQLAlchemy; any database with a SQLAlchemy
dialect works (PostgreSQL in production, SQLite for development and tests).

Environment Variables:
    BLACKBOARD_DATABASE_URL: SQLAlchemy connection string.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

BLACKBOARD_DATABASE_URL_ENV = "BLACKBOARD_DATABASE_URL"

_engine: Engine | None = None


class DatabaseConfigError(Exception):
    """Raised when database configuration is missing or invalid.

    Operations requiring the database do not proceed without a valid
    configuration.
    """


def is_database_configured() -> bool:
    """Check if a database is configured via environment."""
    return bool(os.environ.get(BLACKBOARD_DATABASE_URL_ENV))


def _normalize_url(url: str) -> str:
    """Map the legacy postgres:// scheme to the one SQLAlchemy expects."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url() -> str:
    """Get the database URL from environment.

    Raises:
        DatabaseConfigError: If BLACKBOARD_DATABASE_URL is not set.
    """
    url = os.environ.get(BLACKBOARD_DATABASE_URL_ENV)

    if not url:
        raise DatabaseConfigError(
            f"Database URL not configured. Set {BLACKBOARD_DATABASE_URL_ENV} environment variable."
        )

    return _normalize_url(url)


def get_engine() -> Engine:
    """Get or create the shared database engine.

    Raises:
        DatabaseConfigError: If BLACKBOARD_DATABASE_URL is not set.
    """
    global _engine

    if _engine is None:
        url = get_database_url()
        if url.startswith("sqlite"):
            _engine = create_engine(url, echo=False)
        else:
            _engine = create_engine(
                url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                echo=False,
            )
        logger.info("Created database engine")

    return _engine


@contextmanager
def begin_conn() -> Generator[Connection, None, None]:
    """Connection with a transaction: commits on success, rolls back on error.

    Raises:
        DatabaseConfigError: If database is not configured.
        SQLAlchemyError: If database operation fails.
    """
    engine = get_engine()
    with engine.connect() as conn, conn.begin():
        yield conn


def reset_engine() -> None:
    """Dispose the shared engine. Used by tests to pick up a new URL."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
