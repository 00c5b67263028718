"""Culture-aware conversions of loosely-typed field values.

Values stored in a dataset are plain Python primitives (None, bool, int,
float, str) or sequences of them. Conversions between those kinds are always
explicit and go through the functions in this module; nothing else in the
engine coerces values implicitly.

Rules:
- String fields are never numericized.
- Boolean fields map true -> 1 and false -> 0 after boolean coercion.
- Numeric fields reject boolean input and keep None as None (treating a
  missing value as zero is an aggregation concern, not a conversion one).
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

from blackboard.model.enums import TypeOfValue

if TYPE_CHECKING:
    from blackboard.model.descriptors import ValueDescriptor

_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_SPECIAL_NUMBERS = {
    "infinity": math.inf,
    "+infinity": math.inf,
    "-infinity": -math.inf,
    "nan": math.nan,
}


class ValueFormatError(ValueError):
    """Raised when a text value is not a valid number for the culture."""

    def __init__(self, value: str, culture: str) -> None:
        self.value = value
        self.culture = culture
        super().__init__(f"Input string '{value}' was not in a correct format (culture '{culture}').")


class InvalidCastError(TypeError):
    """Raised when a value cannot be converted to the type mandated by a field."""

    def __init__(self, source: str, target: str, reason: str | None = None) -> None:
        self.source = source
        self.target = target
        message = f"Cannot convert {source} values to {target}."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class UnknownCultureError(ValueError):
    """Raised when a culture name is not known."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown culture: '{name}'. Known: {sorted(_KNOWN_CULTURES)}")


class ValueKind(StrEnum):
    """Closed set of value kinds carried through conversions and expressions."""

    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    SEQUENCE = "sequence"


def kind_of(value: Any) -> ValueKind:
    """Classify a raw value.

    Raises:
        InvalidCastError: If the value is not one of the supported kinds.
    """
    if value is None:
        return ValueKind.NULL
    # bool must be checked before numbers, it is an int subclass
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    raise InvalidCastError(type(value).__name__, "any supported value kind")


@dataclass(frozen=True)
class Culture:
    """Formatting conventions used to parse text values.

    Attributes:
        name: Culture name (e.g. "it-IT"); empty for the invariant culture.
        decimal_separator: Separator between integral and fractional digits.
        group_separator: Thousands separator, ignored while parsing.
        true_literal: Text recognized as boolean true (case-insensitive).
        false_literal: Text recognized as boolean false (case-insensitive).
    """

    name: str = ""
    decimal_separator: str = "."
    group_separator: str = ","
    true_literal: str = "True"
    false_literal: str = "False"

    INVARIANT: ClassVar[Culture]

    @property
    def display_name(self) -> str:
        return self.name or "invariant"

    @classmethod
    def from_name(cls, name: str | None) -> Culture:
        """Return a known culture by name; blank or None means invariant.

        Raises:
            UnknownCultureError: If the name is not in the culture table.
        """
        if name is None or not name.strip():
            return cls.INVARIANT

        key = name.strip().casefold()
        for culture_name, culture in _KNOWN_CULTURES.items():
            if culture_name.casefold() == key:
                return culture

        raise UnknownCultureError(name)


Culture.INVARIANT = Culture()

_KNOWN_CULTURES: Mapping[str, Culture] = {
    "en-US": Culture("en-US", ".", ","),
    "en-GB": Culture("en-GB", ".", ","),
    "it-IT": Culture("it-IT", ",", "."),
    "de-DE": Culture("de-DE", ",", "."),
    "fr-FR": Culture("fr-FR", ",", " "),
    "es-ES": Culture("es-ES", ",", "."),
}


def parse_number(culture: Culture, text: str) -> float:
    """Parse text as a floating point number using the culture conventions.

    Raises:
        ValueFormatError: If the text is not a number.
        OverflowError: If the number is outside the floating point range.
    """
    candidate = text.strip()
    if culture.group_separator:
        candidate = candidate.replace(culture.group_separator, "")
    if culture.decimal_separator != ".":
        candidate = candidate.replace(culture.decimal_separator, ".")

    special = _SPECIAL_NUMBERS.get(candidate.casefold())
    if special is not None:
        return special

    if not _NUMBER_PATTERN.match(candidate):
        raise ValueFormatError(text, culture.display_name)

    result = float(candidate)
    if math.isinf(result):
        raise OverflowError(f"Value '{text}' was either too large or too small for a Double.")
    return result


def to_boolean(culture: Culture, value: Any) -> bool:
    """Coerce a value to boolean.

    None is false, booleans pass through, the culture literals for true and
    false are recognized case-insensitively, anything else is converted to a
    number where nonzero means true.

    Raises:
        ValueFormatError: If a string is neither a boolean literal nor a number.
        InvalidCastError: If the value kind cannot be converted.
    """
    kind = kind_of(value)

    if kind is ValueKind.NULL:
        return False

    if kind is ValueKind.BOOLEAN:
        return bool(value)

    if kind is ValueKind.STRING:
        text = value.strip()
        if text.casefold() == culture.true_literal.casefold():
            return True
        if text.casefold() == culture.false_literal.casefold():
            return False
        return parse_number(culture, text) != 0

    if kind is ValueKind.NUMBER:
        return value != 0

    raise InvalidCastError(kind.value, "Boolean")


def to_number(descriptor: ValueDescriptor, culture: Culture, value: Any) -> float | None:
    """Convert a value to the numeric domain required by a field.

    Args:
        descriptor: The field the value belongs to (its type drives the rules).
        culture: Culture used to parse text values.
        value: The raw value.

    Returns:
        The numeric value, or None when there is no numeric representation
        (string fields, missing values on numeric fields).

    Raises:
        InvalidCastError: On boolean input for a numeric field, or
            unsupported value kinds.
        ValueFormatError: If a text value is malformed.
        OverflowError: If a text value is out of range.
    """
    if descriptor.type is TypeOfValue.STRING:
        return None

    if descriptor.type is TypeOfValue.BOOLEAN:
        return 1.0 if to_boolean(culture, value) else 0.0

    kind = kind_of(value)

    if kind is ValueKind.BOOLEAN:
        raise InvalidCastError(
            "Boolean",
            "Double",
            "Boolean values are not automatically converted to numbers.",
        )

    if kind is ValueKind.NULL:
        return None

    if kind is ValueKind.NUMBER:
        return float(value)

    if kind is ValueKind.STRING:
        return parse_number(culture, value)

    raise InvalidCastError(kind.value, "Double")
