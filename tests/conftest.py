"""Pytest configuration and fixtures for blackboard tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from blackboard.model import ProtocolDescriptor
from blackboard.persistence.repositories.submissions import clear_in_memory_store
from blackboard.validators import BLACKBOARD_SCHEMA_DIR_ENV
from tests.factories import SCHEMA_DIR, create_bmi_protocol


@pytest.fixture
def bmi_protocol() -> ProtocolDescriptor:
    """A fresh BMI test protocol."""
    return create_bmi_protocol()


@pytest.fixture(autouse=True)
def set_schema_dir(monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the schema validator at the repository schemas directory."""
    monkeypatch.setenv(BLACKBOARD_SCHEMA_DIR_ENV, str(SCHEMA_DIR))


@pytest.fixture(autouse=True)
def clean_in_memory_store() -> Iterator[None]:
    """Start every test with an empty in-memory submissions store."""
    clear_in_memory_store()
    yield
    clear_in_memory_store()
