"""JSON Schema validator with fail-closed behavior.

Loads `<name>.schema.json` documents from the project schemas/ directory and
validates JSON data against them. Any error or uncertainty (missing schema,
unreadable file, invalid schema) results in rejection.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema import Draft202012Validator

logger = logging.getLogger(__name__)

PROTOCOL_SCHEMA = "protocol"
BLACKBOARD_SCHEMA_DIR_ENV = "BLACKBOARD_SCHEMA_DIR"


@dataclass(frozen=True)
class ValidationError:
    """A single validation error."""

    code: str
    message: str
    path: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class ValidationResult:
    """Result of validation - fail-closed by default."""

    passed: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    @classmethod
    def fail(cls, errors: list[ValidationError]) -> ValidationResult:
        return cls(passed=False, errors=errors)

    @classmethod
    def success(cls, warnings: list[ValidationError] | None = None) -> ValidationResult:
        return cls(passed=True, warnings=warnings or [])

    @classmethod
    def fail_closed(cls, reason: str) -> ValidationResult:
        """Fail closed with a single error - used when validation cannot proceed."""
        return cls(
            passed=False,
            errors=[ValidationError(code="FAIL_CLOSED", message=reason, path="$")],
        )


class SchemaValidator:
    """Validates JSON documents against named JSON schemas.

    Schemas reject unknown properties, so a misspelled key in a protocol
    document is reported instead of being silently dropped.
    """

    def __init__(self, schema_dir: Path | str | None = None) -> None:
        """Initialize validator with schema directory.

        Args:
            schema_dir: Directory containing JSON schema files.
                        Defaults to $BLACKBOARD_SCHEMA_DIR, then the project
                        schemas/ directory.
        """
        if schema_dir is None:
            schema_dir = os.environ.get(BLACKBOARD_SCHEMA_DIR_ENV) or None

        if schema_dir is None:
            self._schema_dir = Path(__file__).parent.parent.parent.parent / "schemas"
        else:
            self._schema_dir = Path(schema_dir)

        self._validators: dict[str, Draft202012Validator] = {}

    def _get_validator(self, schema_name: str) -> Draft202012Validator | None:
        """Get a validator for a schema. Returns None on error (fail closed)."""
        if schema_name in self._validators:
            return self._validators[schema_name]

        schema_file = self._schema_dir / f"{schema_name}.schema.json"
        try:
            with schema_file.open("r", encoding="utf-8") as f:
                schema: dict[str, Any] = json.load(f)
            Draft202012Validator.check_schema(schema)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Cannot load schema %s: %s", schema_file, e)
            return None
        except jsonschema.SchemaError as e:
            logger.warning("Invalid schema %s: %s", schema_file, e.message)
            return None

        validator = Draft202012Validator(schema)
        self._validators[schema_name] = validator
        return validator

    def validate(self, schema_name: str, data: Any) -> ValidationResult:
        """Validate data against a named schema.

        Args:
            schema_name: Name of schema (without .schema.json extension)
            data: JSON data to validate

        Returns:
            ValidationResult with pass/fail and any errors.
        """
        if data is None:
            return ValidationResult.fail_closed("Data is None - cannot validate")

        validator = self._get_validator(schema_name)
        if validator is None:
            return ValidationResult.fail_closed(
                f"Cannot load or parse schema '{schema_name}' - validation fails closed"
            )

        errors: list[ValidationError] = []
        for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
            path = "$" + "".join(
                f".{p}" if isinstance(p, str) else f"[{p}]" for p in error.absolute_path
            )
            errors.append(ValidationError(code=str(error.validator), message=error.message, path=path))

        if errors:
            return ValidationResult.fail(errors)

        return ValidationResult.success()

    def validate_json_file(self, schema_name: str, json_path: Path | str) -> ValidationResult:
        """Validate a JSON file against a schema; FAILS CLOSED on any file/parse error."""
        json_path = Path(json_path)

        try:
            with json_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return ValidationResult.fail_closed(f"File not found: {json_path}")
        except json.JSONDecodeError as e:
            return ValidationResult.fail_closed(f"Invalid JSON: {e}")
        except OSError as e:
            return ValidationResult.fail_closed(f"Cannot read file: {e}")

        return self.validate(schema_name, data)

    def list_available_schemas(self) -> list[str]:
        """List all available schema names in the schema directory."""
        if not self._schema_dir.exists():
            return []

        return sorted(p.name.removesuffix(".schema.json") for p in self._schema_dir.glob("*.schema.json"))
