"""Multi-map from field to the raw values contributed by several datasets."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from blackboard.model.dataset import DataSetValue
    from blackboard.model.descriptors import ValueDescriptor


class DataSetValueAccumulator:
    """Collects stored values keyed by descriptor (same reference, same key)."""

    def __init__(self) -> None:
        self._items: dict[ValueDescriptor, list[Any]] = {}

    def __getitem__(self, descriptor: ValueDescriptor) -> tuple[Any, ...]:
        """Accumulated values for the field, in accumulation order (empty if none)."""
        return tuple(self._items.get(descriptor, ()))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def add(self, value: DataSetValue) -> None:
        self._items.setdefault(value.descriptor, []).append(value.value)

    def add_range(self, values: Iterable[DataSetValue]) -> None:
        for value in values:
            self.add(value)

    def clear(self) -> None:
        self._items.clear()
