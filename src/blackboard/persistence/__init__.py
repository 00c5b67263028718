"""Persistence of protocols and submissions.

Provides database connectivity, the relational schema and connection helpers.
Repositories live in blackboard.persistence.repositories.
"""

from blackboard.persistence.db import (
    DatabaseConfigError,
    begin_conn,
    get_database_url,
    get_engine,
    is_database_configured,
    reset_engine,
)
from blackboard.persistence.schema import create_schema

__all__ = [
    "DatabaseConfigError",
    "begin_conn",
    "create_schema",
    "get_database_url",
    "get_engine",
    "is_database_configured",
    "reset_engine",
]
