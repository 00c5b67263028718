"""Persistence repositories.

Provides SQL persistence of submissions and an in-memory fallback for
development/testing.
"""

from blackboard.persistence.repositories.submissions import (
    InMemorySubmissionsRepository,
    SubmissionNotFoundError,
    SubmissionRecord,
    SubmissionsRepository,
    clear_in_memory_store,
    get_submissions_repository,
)

__all__ = [
    "InMemorySubmissionsRepository",
    "SubmissionNotFoundError",
    "SubmissionRecord",
    "SubmissionsRepository",
    "clear_in_memory_store",
    "get_submissions_repository",
]
