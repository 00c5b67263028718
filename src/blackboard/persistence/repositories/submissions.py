"""Submissions repository.

Stores datasets as submissions (protocol, optional center, values) and
rebuilds datasets from them. SubmissionsRepository runs SQL through a
SQLAlchemy connection; InMemorySubmissionsRepository is the fallback for
development and tests when no database is configured.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, Float, Integer, String, Text, bindparam, text

from blackboard.model.conversions import Culture
from blackboard.model.dataset import DataSet, SubmissionValue
from blackboard.model.errors import InvalidDataSetError, MissingArgumentError, ProtocolMismatchError

if TYPE_CHECKING:
    from sqlalchemy import Connection

    from blackboard.model.descriptors import ProtocolDescriptor

logger = logging.getLogger(__name__)


class SubmissionNotFoundError(Exception):
    """Raised when a submission is not found."""

    def __init__(self, submission_id: int) -> None:
        self.submission_id = submission_id
        super().__init__(f"Submission {submission_id} not found")


@dataclass(frozen=True)
class SubmissionRecord:
    """A stored submission with its values."""

    submission_id: int
    protocol_reference: str
    center: str | None
    creation_time: datetime
    created_by: str | None
    values: tuple[SubmissionValue, ...] = field(default_factory=tuple)


def _prepare(dataset: DataSet) -> list[SubmissionValue]:
    """Recalculate if needed and reject datasets with errors."""
    if dataset is None:
        raise MissingArgumentError("dataset")

    if dataset.is_dirty:
        dataset.calculate()

    if dataset.issues.has_errors:
        raise InvalidDataSetError(dataset.protocol.reference, len(dataset.issues.errors))

    return dataset.to_submission_values()


def _rebuild(
    protocol: ProtocolDescriptor, record: SubmissionRecord, culture: Culture
) -> DataSet:
    if protocol is None:
        raise MissingArgumentError("protocol")

    if (protocol.reference or "").casefold() != record.protocol_reference.casefold():
        raise ProtocolMismatchError(protocol.reference, record.protocol_reference)

    dataset = DataSet(protocol, culture=culture, populate_defaults=False)
    known = {d.reference.casefold() for d in protocol.iter_values() if d.reference.strip()}
    for row in record.values:
        if row.reference.casefold() not in known:
            logger.warning(
                "Submission %d: reference %r is not in protocol %r, skipped",
                record.submission_id,
                row.reference,
                protocol.reference,
            )
            continue
        dataset.add_value(row.reference, row.value)

    return dataset


_SUBMISSION_COLUMNS = {
    "id": Integer,
    "protocol_reference": String,
    "center": String,
    "creation_time": DateTime(timezone=True),
    "created_by": String,
}


class SubmissionsRepository:
    """Repository for submissions stored in a SQL database.

    The connection must be in a transaction (see begin_conn()); committing is
    the caller's responsibility.
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def ensure_protocol(self, protocol: ProtocolDescriptor) -> int:
        """Return the id of the stored protocol, inserting it if missing."""
        if protocol is None:
            raise MissingArgumentError("protocol")

        existing = self._conn.execute(
            text("SELECT id FROM protocols WHERE lower(reference) = lower(:reference)"),
            {"reference": protocol.reference},
        ).scalar_one_or_none()
        if existing is not None:
            return int(existing)

        protocol_id = self._conn.execute(
            text("INSERT INTO protocols (reference, name) VALUES (:reference, :name) RETURNING id"),
            {"reference": protocol.reference, "name": protocol.name or protocol.reference},
        ).scalar_one()
        logger.info("Stored protocol %r as %d", protocol.reference, protocol_id)
        return int(protocol_id)

    def ensure_center(self, name: str, created_by: str | None = None) -> int:
        """Return the id of the named center, inserting it if missing."""
        if name is None:
            raise MissingArgumentError("name")

        existing = self._conn.execute(
            text("SELECT id FROM centers WHERE name = :name"), {"name": name}
        ).scalar_one_or_none()
        if existing is not None:
            return int(existing)

        statement = text(
            """
            INSERT INTO centers (name, creation_time, created_by)
            VALUES (:name, :creation_time, :created_by)
            RETURNING id
            """
        ).bindparams(bindparam("creation_time", type_=DateTime(timezone=True)))
        center_id = self._conn.execute(
            statement,
            {"name": name, "creation_time": datetime.now(UTC), "created_by": created_by},
        ).scalar_one()
        logger.info("Stored center %r as %d", name, center_id)
        return int(center_id)

    def push(
        self,
        dataset: DataSet,
        center: str | None = None,
        created_by: str | None = None,
    ) -> int:
        """Store a dataset as a new submission.

        Returns:
            Id of the new submission.

        Raises:
            MissingArgumentError: If dataset is None.
            InvalidDataSetError: If the dataset has model or validation errors.
        """
        rows = _prepare(dataset)
        protocol_id = self.ensure_protocol(dataset.protocol)
        center_id = self.ensure_center(center, created_by) if center else None

        statement = text(
            """
            INSERT INTO submissions (protocol_id, center_id, creation_time, created_by)
            VALUES (:protocol_id, :center_id, :creation_time, :created_by)
            RETURNING id
            """
        ).bindparams(bindparam("creation_time", type_=DateTime(timezone=True)))
        submission_id = int(
            self._conn.execute(
                statement,
                {
                    "protocol_id": protocol_id,
                    "center_id": center_id,
                    "creation_time": datetime.now(UTC),
                    "created_by": created_by,
                },
            ).scalar_one()
        )

        if rows:
            self._conn.execute(
                text(
                    """
                    INSERT INTO submission_values (submission_id, reference, text, number)
                    VALUES (:submission_id, :reference, :text, :number)
                    """
                ),
                [
                    {
                        "submission_id": submission_id,
                        "reference": row.reference,
                        "text": row.text,
                        "number": row.number,
                    }
                    for row in rows
                ],
            )

        logger.info(
            "Pushed submission %d for protocol %r (%d values)",
            submission_id,
            dataset.protocol.reference,
            len(rows),
        )
        return submission_id

    def get_submission(self, submission_id: int) -> SubmissionRecord:
        """Get a submission with its values.

        Raises:
            SubmissionNotFoundError: If there is no such submission.
        """
        row = self._conn.execute(
            text(
                """
                SELECT s.id, p.reference AS protocol_reference, c.name AS center,
                       s.creation_time, s.created_by
                FROM submissions s
                JOIN protocols p ON p.id = s.protocol_id
                LEFT JOIN centers c ON c.id = s.center_id
                WHERE s.id = :submission_id
                """
            ).columns(**_SUBMISSION_COLUMNS),
            {"submission_id": submission_id},
        ).fetchone()

        if row is None:
            raise SubmissionNotFoundError(submission_id)

        return self._row_to_record(row)

    def list_submissions(self, protocol_reference: str | None = None) -> list[SubmissionRecord]:
        """List submissions (optionally of one protocol) ordered by id."""
        statement = """
            SELECT s.id, p.reference AS protocol_reference, c.name AS center,
                   s.creation_time, s.created_by
            FROM submissions s
            JOIN protocols p ON p.id = s.protocol_id
            LEFT JOIN centers c ON c.id = s.center_id
            """
        parameters: dict[str, Any] = {}
        if protocol_reference is not None:
            statement += " WHERE lower(p.reference) = lower(:reference)"
            parameters["reference"] = protocol_reference
        statement += " ORDER BY s.id"

        result = self._conn.execute(
            text(statement).columns(**_SUBMISSION_COLUMNS), parameters
        ).fetchall()
        return [self._row_to_record(row) for row in result]

    def load_dataset(
        self,
        protocol: ProtocolDescriptor,
        submission_id: int,
        culture: Culture = Culture.INVARIANT,
    ) -> DataSet:
        """Rebuild a dataset (not yet calculated) from a stored submission.

        Raises:
            SubmissionNotFoundError: If there is no such submission.
            ProtocolMismatchError: If the submission belongs to another protocol.
        """
        return _rebuild(protocol, self.get_submission(submission_id), culture)

    def _row_to_record(self, row: Any) -> SubmissionRecord:
        values = self._conn.execute(
            text(
                """
                SELECT reference, text, number
                FROM submission_values
                WHERE submission_id = :submission_id
                ORDER BY id
                """
            ).columns(reference=String, text=Text, number=Float),
            {"submission_id": row.id},
        ).fetchall()

        return SubmissionRecord(
            submission_id=int(row.id),
            protocol_reference=row.protocol_reference,
            center=row.center,
            creation_time=row.creation_time,
            created_by=row.created_by,
            values=tuple(SubmissionValue(v.reference, v.text, v.number) for v in values),
        )


_in_memory_store: dict[str, Any] = {
    "protocols": {},
    "centers": {},
    "submissions": {},
}
_ids = itertools.count(1)


class InMemorySubmissionsRepository:
    """In-memory fallback repository for when no database is configured."""

    def ensure_protocol(self, protocol: ProtocolDescriptor) -> int:
        if protocol is None:
            raise MissingArgumentError("protocol")

        protocols: dict[str, int] = _in_memory_store["protocols"]
        key = (protocol.reference or "").casefold()
        if key not in protocols:
            protocols[key] = next(_ids)
        return protocols[key]

    def ensure_center(self, name: str, created_by: str | None = None) -> int:
        if name is None:
            raise MissingArgumentError("name")

        centers: dict[str, int] = _in_memory_store["centers"]
        if name not in centers:
            centers[name] = next(_ids)
        return centers[name]

    def push(
        self,
        dataset: DataSet,
        center: str | None = None,
        created_by: str | None = None,
    ) -> int:
        """Store a dataset as a new submission in memory."""
        rows = _prepare(dataset)
        self.ensure_protocol(dataset.protocol)
        if center:
            self.ensure_center(center, created_by)

        submission_id = next(_ids)
        _in_memory_store["submissions"][submission_id] = SubmissionRecord(
            submission_id=submission_id,
            protocol_reference=dataset.protocol.reference,
            center=center or None,
            creation_time=datetime.now(UTC),
            created_by=created_by,
            values=tuple(rows),
        )
        logger.info("Pushed in-memory submission %d (%d values)", submission_id, len(rows))
        return submission_id

    def get_submission(self, submission_id: int) -> SubmissionRecord:
        record = _in_memory_store["submissions"].get(submission_id)
        if record is None:
            raise SubmissionNotFoundError(submission_id)
        return record

    def list_submissions(self, protocol_reference: str | None = None) -> list[SubmissionRecord]:
        records = sorted(_in_memory_store["submissions"].values(), key=lambda r: r.submission_id)
        if protocol_reference is None:
            return records
        key = protocol_reference.casefold()
        return [r for r in records if r.protocol_reference.casefold() == key]

    def load_dataset(
        self,
        protocol: ProtocolDescriptor,
        submission_id: int,
        culture: Culture = Culture.INVARIANT,
    ) -> DataSet:
        return _rebuild(protocol, self.get_submission(submission_id), culture)


def clear_in_memory_store() -> None:
    """Clear the in-memory store. For testing only."""
    for table in _in_memory_store.values():
        table.clear()


def get_submissions_repository(
    conn: Connection | None = None,
) -> SubmissionsRepository | InMemorySubmissionsRepository:
    """Factory to get appropriate submissions repository.

    Returns the SQL repository when a connection is given, otherwise the
    in-memory fallback.
    """
    if conn is not None:
        return SubmissionsRepository(conn)
    return InMemorySubmissionsRepository()
