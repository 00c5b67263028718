"""Relational schema for stored protocols and submissions.

centers             one row per submitting center
protocols           one row per protocol reference
submissions         one pushed dataset (protocol, optional center, audit fields)
submission_values   stored values of a submission: reference + text/number
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

metadata = MetaData()

centers = Table(
    "centers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(200), nullable=False, unique=True),
    Column("creation_time", DateTime(timezone=True), nullable=False),
    Column("created_by", String(200), nullable=True),
)

protocols = Table(
    "protocols",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reference", String(200), nullable=False, unique=True),
    Column("name", String(400), nullable=False),
)

submissions = Table(
    "submissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("protocol_id", Integer, ForeignKey("protocols.id"), nullable=False, index=True),
    Column("center_id", Integer, ForeignKey("centers.id"), nullable=True),
    Column("creation_time", DateTime(timezone=True), nullable=False),
    Column("created_by", String(200), nullable=True),
)

submission_values = Table(
    "submission_values",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "submission_id",
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("reference", String(200), nullable=False),
    Column("text", Text, nullable=True),
    Column("number", Float, nullable=True),
)


def create_schema(conn: Connection) -> None:
    """Create all tables that do not exist yet."""
    metadata.create_all(conn)
    logger.info("Ensured submission schema (%d tables)", len(metadata.tables))
