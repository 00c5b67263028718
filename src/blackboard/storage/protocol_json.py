"""Load and save protocols as JSON documents.

Documents mirror the protocol model 1:1 with PascalCase keys and enum names
as values. Fields holding their default value (empty text, None/Double
enums, empty lists) are omitted, so saving a loaded document reproduces
the original text.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, TextIO

from pydantic import ValidationError as PydanticValidationError

from blackboard.model.descriptors import ProtocolDescriptor
from blackboard.model.errors import MissingArgumentError
from blackboard.storage.errors import ProtocolFormatError
from blackboard.validators.schema_validator import PROTOCOL_SCHEMA, SchemaValidator

logger = logging.getLogger(__name__)

_INDENT = 2


def _prune(document: Any) -> Any:
    if isinstance(document, dict):
        return {
            key: _prune(value)
            for key, value in document.items()
            if value != "" and value != [] and value is not None
        }
    if isinstance(document, list):
        return [_prune(item) for item in document]
    return document


def to_document(protocol: ProtocolDescriptor) -> dict[str, Any]:
    """Return the JSON-ready document for a protocol."""
    if protocol is None:
        raise MissingArgumentError("protocol")

    document = protocol.model_dump(mode="json", by_alias=True, exclude_defaults=True)
    return _prune(document)


def from_document(
    document: Any,
    *,
    validate: bool = False,
    validator: SchemaValidator | None = None,
    path: str | None = None,
) -> ProtocolDescriptor:
    """Build a protocol from a decoded JSON document.

    Args:
        document: Decoded JSON value.
        validate: Check the document against the protocol JSON schema first.
        validator: Validator to use (default: project schemas directory).
        path: Source path, reported in errors.

    Raises:
        ProtocolFormatError: If the document does not describe a protocol.
    """
    if validate:
        result = (validator or SchemaValidator()).validate(PROTOCOL_SCHEMA, document)
        if not result.passed:
            raise ProtocolFormatError(
                "Protocol document does not match the schema.",
                errors=[str(error) for error in result.errors],
                path=path,
            )

    try:
        protocol = ProtocolDescriptor.model_validate(document)
    except PydanticValidationError as e:
        raise ProtocolFormatError(
            "Invalid protocol document.",
            errors=[
                f"{'.'.join(str(p) for p in error['loc']) or '$'}: {error['msg']}"
                for error in e.errors()
            ],
            path=path,
        ) from e

    logger.debug("Loaded protocol %r with %d section(s)", protocol.reference, len(protocol.sections))
    return protocol


def loads(text: str, *, validate: bool = False, validator: SchemaValidator | None = None) -> ProtocolDescriptor:
    """Parse a protocol from JSON text."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolFormatError("Invalid JSON.", errors=[str(e)]) from e

    return from_document(document, validate=validate, validator=validator)


def load(reader: TextIO, *, validate: bool = False, validator: SchemaValidator | None = None) -> ProtocolDescriptor:
    """Parse a protocol from a text stream."""
    return loads(reader.read(), validate=validate, validator=validator)


def load_file(
    path: Path | str,
    encoding: str = "utf-8",
    *,
    validate: bool = False,
    validator: SchemaValidator | None = None,
) -> ProtocolDescriptor:
    """Read a protocol from a JSON file.

    Raises:
        OSError: If the file cannot be read.
        ProtocolFormatError: If the content is not a valid protocol.
    """
    path = Path(path)
    text = path.read_text(encoding=encoding)
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolFormatError("Invalid JSON.", errors=[str(e)], path=str(path)) from e

    return from_document(document, validate=validate, validator=validator, path=str(path))


def dumps(protocol: ProtocolDescriptor) -> str:
    """Serialize a protocol to indented JSON text."""
    return json.dumps(to_document(protocol), indent=_INDENT, ensure_ascii=False)


def dump(writer: TextIO, protocol: ProtocolDescriptor) -> None:
    writer.write(dumps(protocol))


def save_file(path: Path | str, protocol: ProtocolDescriptor, encoding: str = "utf-8") -> None:
    """Write a protocol to a JSON file, replacing any existing file."""
    text = dumps(protocol)
    Path(path).write_text(text, encoding=encoding)
    logger.info("Saved protocol %r to %s", protocol.reference, path)
