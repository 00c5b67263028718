"""Issues found in a protocol model or in a dataset."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, overload

from blackboard.model.enums import IssueSeverity

if TYPE_CHECKING:
    from blackboard.model.descriptors import ValueDescriptor


@dataclass(frozen=True)
class ModelError:
    """An issue found while validating a protocol model.

    Attributes:
        severity: WARNING or MODEL_ERROR.
        item: The offending descriptor (or None).
        message: Non-localized description.
    """

    severity: IssueSeverity
    item: Any
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity is not IssueSeverity.WARNING


@dataclass(frozen=True)
class DataError:
    """An issue recorded against a dataset."""

    severity: IssueSeverity
    item: ValueDescriptor | None
    message: str

    @classmethod
    def from_model_error(cls, error: ModelError) -> DataError:
        """Convert a model validation issue into a dataset issue."""
        from blackboard.model.descriptors import ValueDescriptor

        item = error.item if isinstance(error.item, ValueDescriptor) else None
        return cls(severity=error.severity, item=item, message=error.message)

    @property
    def is_error(self) -> bool:
        return self.severity is not IssueSeverity.WARNING

    @property
    def reference(self) -> str | None:
        """Reference ID of the offending field, if any."""
        return self.item.reference if self.item is not None else None


class IssueCollection(Sequence[DataError]):
    """Ordered list of issues found in a dataset.

    Issues are appended in the order they are found and never removed
    automatically; callers that recalculate a dataset and need a fresh report
    must call clear() first.
    """

    def __init__(self) -> None:
        self._items: list[DataError] = []

    @overload
    def __getitem__(self, index: int) -> DataError: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[DataError]: ...

    def __getitem__(self, index: int | slice) -> DataError | Sequence[DataError]:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[DataError]:
        return iter(self._items)

    def __repr__(self) -> str:
        warnings = len(self.warnings)
        return f"IssueCollection(errors={len(self) - warnings}, warnings={warnings})"

    @property
    def errors(self) -> list[DataError]:
        """Model and validation errors (warnings excluded)."""
        return [x for x in self._items if x.is_error]

    @property
    def warnings(self) -> list[DataError]:
        return [x for x in self._items if not x.is_error]

    @property
    def has_errors(self) -> bool:
        return any(x.is_error for x in self._items)

    def add(self, issue: DataError) -> None:
        self._items.append(issue)

    def add_warning(self, item: ValueDescriptor | None, message: str) -> None:
        self.add(DataError(IssueSeverity.WARNING, item, message))

    def add_model_error(self, item: ValueDescriptor | None, message: str) -> None:
        self.add(DataError(IssueSeverity.MODEL_ERROR, item, message))

    def add_model_errors(self, errors: Iterable[ModelError]) -> None:
        for error in errors:
            self.add(DataError.from_model_error(error))

    def add_validation_error(self, item: ValueDescriptor | None, message: str) -> None:
        self.add(DataError(IssueSeverity.VALIDATION_ERROR, item, message))

    def clear(self) -> None:
        self._items.clear()
