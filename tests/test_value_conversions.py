"""Tests for culture-aware value conversions."""

from __future__ import annotations

import math

import pytest

from blackboard.model import (
    Culture,
    InvalidCastError,
    TypeOfValue,
    UnknownCultureError,
    ValueDescriptor,
    ValueFormatError,
    ValueKind,
    kind_of,
    parse_number,
    to_boolean,
    to_number,
)

INVARIANT = Culture.INVARIANT


class TestDoubleFields:
    """Conversions for fields declared as Double."""

    def test_floats_and_integers_convert_to_number(self) -> None:
        """Any floating point or integer value converts to a float."""
        descriptor = ValueDescriptor()

        assert to_number(descriptor, INVARIANT, 1.0) == 1.0
        assert to_number(descriptor, INVARIANT, 1) == 1.0
        assert isinstance(to_number(descriptor, INVARIANT, 1), float)

    def test_valid_strings_convert_to_number(self) -> None:
        """Numeric text (with exponent) converts with the invariant culture."""
        descriptor = ValueDescriptor()

        assert to_number(descriptor, INVARIANT, "1.0") == 1.0
        assert to_number(descriptor, INVARIANT, "1e0") == 1.0
        assert to_number(descriptor, INVARIANT, " -2.5 ") == -2.5

    def test_boolean_is_not_converted_implicitly(self) -> None:
        """Boolean input on a numeric field is an invalid cast."""
        with pytest.raises(InvalidCastError):
            to_number(ValueDescriptor(), INVARIANT, True)

    def test_null_stays_null(self) -> None:
        """A missing value has no numeric representation."""
        assert to_number(ValueDescriptor(), INVARIANT, None) is None

    def test_malformed_text_raises_format_error(self) -> None:
        """Non-numeric text raises ValueFormatError (a ValueError)."""
        with pytest.raises(ValueFormatError):
            to_number(ValueDescriptor(), INVARIANT, "abc")

        with pytest.raises(ValueError):
            to_number(ValueDescriptor(), INVARIANT, "1.2.3")

    def test_overflowing_text_raises_overflow_error(self) -> None:
        """Text outside the floating point range overflows."""
        with pytest.raises(OverflowError):
            to_number(ValueDescriptor(), INVARIANT, "1e400")

    def test_sequences_cannot_be_converted(self) -> None:
        """Sequences are not numbers."""
        with pytest.raises(InvalidCastError):
            to_number(ValueDescriptor(), INVARIANT, [1, 2])


class TestBooleanFields:
    """Conversions for fields declared as Boolean."""

    def test_any_value_converts_to_zero_or_one(self) -> None:
        """Boolean fields map truthiness to 1.0 and 0.0."""
        descriptor = ValueDescriptor(type=TypeOfValue.BOOLEAN)

        assert to_number(descriptor, INVARIANT, 10) == 1.0
        assert to_number(descriptor, INVARIANT, 0) == 0.0
        assert to_number(descriptor, INVARIANT, None) == 0.0
        assert to_number(descriptor, INVARIANT, True) == 1.0
        assert to_number(descriptor, INVARIANT, False) == 0.0
        assert to_number(descriptor, INVARIANT, "true") == 1.0
        assert to_number(descriptor, INVARIANT, "10") == 1.0

    def test_unparseable_text_raises(self) -> None:
        """Text that is neither a literal nor a number is rejected."""
        with pytest.raises(ValueFormatError):
            to_boolean(INVARIANT, "maybe")


class TestStringFields:
    """Strings are never numericized."""

    def test_string_fields_never_convert_to_number(self) -> None:
        """Even a valid number yields None for a String field."""
        descriptor = ValueDescriptor(type=TypeOfValue.STRING)

        assert to_number(descriptor, INVARIANT, "test") is None
        assert to_number(descriptor, INVARIANT, "1.0") is None


class TestCultures:
    """Culture lookup and culture-specific parsing."""

    def test_italian_culture_uses_comma_as_decimal_separator(self) -> None:
        """it-IT parses '1.234,5' as 1234.5."""
        culture = Culture.from_name("it-IT")

        assert parse_number(culture, "1.234,5") == 1234.5

    def test_invariant_culture_ignores_group_separator(self) -> None:
        """Invariant culture parses '1,234.5' as 1234.5."""
        assert parse_number(INVARIANT, "1,234.5") == 1234.5

    def test_special_values_are_recognized(self) -> None:
        """Infinity and NaN literals are accepted."""
        assert parse_number(INVARIANT, "-Infinity") == -math.inf
        assert math.isnan(parse_number(INVARIANT, "NaN"))

    def test_blank_name_is_invariant(self) -> None:
        """Blank or None culture names mean invariant."""
        assert Culture.from_name(None) is INVARIANT
        assert Culture.from_name("  ") is INVARIANT

    def test_lookup_is_case_insensitive(self) -> None:
        """Culture names are matched case-insensitively."""
        assert Culture.from_name("DE-de").name == "de-DE"

    def test_unknown_culture_raises(self) -> None:
        """Unknown names are rejected."""
        with pytest.raises(UnknownCultureError):
            Culture.from_name("xx-XX")


class TestValueKinds:
    """Classification of raw values."""

    def test_bool_is_classified_before_number(self) -> None:
        """bool is an int subclass but is its own kind."""
        assert kind_of(True) is ValueKind.BOOLEAN
        assert kind_of(1) is ValueKind.NUMBER
        assert kind_of(None) is ValueKind.NULL
        assert kind_of("x") is ValueKind.STRING
        assert kind_of((1, 2)) is ValueKind.SEQUENCE

    def test_unsupported_kind_raises(self) -> None:
        """Mappings are not value kinds."""
        with pytest.raises(InvalidCastError):
            kind_of({"a": 1})
