"""Case-insensitive mapping keyed by reference ID."""

from __future__ import annotations

from collections.abc import Iterator, MutableMapping
from typing import Generic, TypeVar

V = TypeVar("V")


def normalize_reference(reference: str) -> str:
    """Return the lookup key for a reference ID (references are case-insensitive)."""
    return reference.casefold()


class ReferenceDict(MutableMapping[str, V], Generic[V]):
    """Mutable mapping whose string keys compare case-insensitively.

    Keys keep the casing used on first insertion; insertion order is preserved.
    """

    def __init__(self) -> None:
        self._items: dict[str, tuple[str, V]] = {}

    def __getitem__(self, key: str) -> V:
        return self._items[normalize_reference(key)][1]

    def __setitem__(self, key: str, value: V) -> None:
        normalized = normalize_reference(key)
        existing = self._items.get(normalized)
        self._items[normalized] = (existing[0] if existing else key, value)

    def __delitem__(self, key: str) -> None:
        del self._items[normalize_reference(key)]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and normalize_reference(key) in self._items

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.items())!r})"
