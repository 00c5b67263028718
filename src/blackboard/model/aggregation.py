"""Aggregation helpers shared by expression built-ins and the aggregator."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING, Any

from blackboard.model.conversions import Culture, to_number

if TYPE_CHECKING:
    from blackboard.model.descriptors import ValueDescriptor


def unpack(values: Iterable[Any]) -> Iterator[Any]:
    """Flatten nested sequences, yielding leaf values (None included)."""
    for value in values:
        if isinstance(value, (list, tuple)):
            yield from unpack(value)
        else:
            yield value


def to_numbers(descriptor: ValueDescriptor, culture: Culture, values: Iterable[Any]) -> list[float]:
    """Convert values for the field, skipping those without a numeric representation."""
    numbers = (to_number(descriptor, culture, value) for value in values)
    return [number for number in numbers if number is not None]


def count_values(values: Iterable[Any]) -> int:
    return sum(1 for _ in values)


def sum_values(descriptor: ValueDescriptor, culture: Culture, values: Iterable[Any]) -> float:
    """Numeric sum; the sum of an empty set is zero."""
    return float(sum(to_numbers(descriptor, culture, values)))


def average_values(
    descriptor: ValueDescriptor, culture: Culture, values: Iterable[Any]
) -> float | None:
    """Arithmetic mean, or None when there are no numeric values."""
    numbers = to_numbers(descriptor, culture, values)
    if not numbers:
        return None
    return sum(numbers) / len(numbers)


def project(values: Iterable[Any], selector: Callable[[Any], Any]) -> list[Any]:
    return [selector(value) for value in values]
