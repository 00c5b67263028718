"""Fail-closed JSON Schema validation of persisted documents."""

from blackboard.validators.schema_validator import (
    BLACKBOARD_SCHEMA_DIR_ENV,
    PROTOCOL_SCHEMA,
    SchemaValidator,
    ValidationError,
    ValidationResult,
)

__all__ = [
    "BLACKBOARD_SCHEMA_DIR_ENV",
    "PROTOCOL_SCHEMA",
    "SchemaValidator",
    "ValidationError",
    "ValidationResult",
]
