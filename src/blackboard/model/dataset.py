"""DataSet: one submission of values against a protocol.

Lifecycle:
1. Construction validates the protocol. If it reports any issue the dataset
   keeps only those issues and stays unusable (no fields, no values).
2. Fields declaring a default expression are populated (unless suppressed).
3. Callers add external values with add_value().
4. calculate() runs the two-pass pipeline:
   - warnings, then validity rules, on fields without a calculated
     expression; any validation error stops here;
   - enabled calculated fields are evaluated and stored;
   - warnings, then validity rules, on those calculated fields.

There is no dependency graph between fields: calculated fields see base
values and whatever calculated fields were stored before them, in protocol
order. Issues are never cleared automatically.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from blackboard.model.conversions import Culture, ValueKind, kind_of
from blackboard.model.descriptors import ProtocolDescriptor, ValueDescriptor
from blackboard.model.errors import MissingArgumentError, UnknownReferenceError
from blackboard.model.evaluator import ExpressionEvaluator
from blackboard.model.issues import IssueCollection
from blackboard.model.references import ReferenceDict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSetValue:
    """A stored value paired with the descriptor of its field."""

    descriptor: ValueDescriptor
    value: Any

    @property
    def reference(self) -> str:
        return self.descriptor.reference


@dataclass(frozen=True)
class SubmissionValue:
    """Persisted form of a stored value: reference plus a text/number pair."""

    reference: str
    text: str | None = None
    number: float | None = None

    @property
    def value(self) -> Any:
        return self.number if self.number is not None else self.text


def format_value(value: Any) -> str:
    """Render a stored value for messages (None renders as empty text)."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class DataSet:
    """Values submitted for a protocol, with their issues.

    Args:
        protocol: Protocol describing the fields. It must not be modified
            after the dataset has been created.
        culture: Culture used when values need a conversion.
        populate_defaults: Evaluate default expressions on construction.
            Defaults are always evaluated here (never in calculate()) so
            external values added later are not overwritten.

    Raises:
        MissingArgumentError: If protocol or culture is None.
    """

    def __init__(
        self,
        protocol: ProtocolDescriptor,
        *,
        culture: Culture = Culture.INVARIANT,
        populate_defaults: bool = True,
    ) -> None:
        if protocol is None:
            raise MissingArgumentError("protocol")
        if culture is None:
            raise MissingArgumentError("culture")

        self._protocol = protocol
        self._culture = culture
        self._issues = IssueCollection()
        self._descriptors: ReferenceDict[ValueDescriptor] = ReferenceDict()
        self._values: ReferenceDict[DataSetValue] = ReferenceDict()
        self._dirty = False
        self._evaluator = ExpressionEvaluator(self)

        self._issues.add_model_errors(protocol.validate_model())
        self._usable = len(self._issues) == 0
        if not self._usable:
            logger.warning(
                "Protocol %r has %d model issue(s), dataset is not usable",
                protocol.reference,
                len(self._issues),
            )
            return

        for descriptor in protocol.iter_values():
            if descriptor.reference.strip():
                self._descriptors.setdefault(descriptor.reference, descriptor)

        if populate_defaults:
            self._populate_defaults()

        logger.info(
            "Created dataset for protocol %r: fields=%d defaults=%d issues=%d",
            protocol.reference,
            len(self._descriptors),
            len(self._values),
            len(self._issues),
        )

    def __getitem__(self, reference: str) -> DataSetValue:
        return self._values[reference]

    def __contains__(self, reference: object) -> bool:
        return reference in self._values

    def __iter__(self) -> Iterator[DataSetValue]:
        return iter(list(self._values.values()))

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return (
            f"DataSet(protocol={self._protocol.reference!r}, values={len(self._values)}, "
            f"issues={len(self._issues)})"
        )

    @property
    def protocol(self) -> ProtocolDescriptor:
        return self._protocol

    @property
    def culture(self) -> Culture:
        """Culture used for conversions (default invariant)."""
        return self._culture

    @culture.setter
    def culture(self, value: Culture) -> None:
        if value is None:
            raise MissingArgumentError("culture")
        self._culture = value

    @property
    def issues(self) -> IssueCollection:
        """Issues found so far. Before calculate() only model errors are present."""
        return self._issues

    @property
    def values(self) -> Mapping[str, DataSetValue]:
        """Read-only view of stored values by reference (case-insensitive)."""
        return MappingProxyType(self._values)

    @property
    def is_dirty(self) -> bool:
        """True if values changed after the last successful calculate()."""
        return self._dirty

    @property
    def is_usable(self) -> bool:
        """False when the protocol had model issues at construction time."""
        return self._usable

    def get(self, reference: str, default: DataSetValue | None = None) -> DataSetValue | None:
        return self._values.get(reference, default)

    def add_value(self, target: str | ValueDescriptor, value: Any) -> DataSetValue:
        """Store a value for a field, replacing any previous value.

        Args:
            target: Reference ID or descriptor of the field.
            value: Raw value; conversions happen lazily when required.

        Returns:
            The stored entry.

        Raises:
            MissingArgumentError: If target is None.
            UnknownReferenceError: If the reference is blank or unknown, or the
                descriptor does not belong to the protocol.
        """
        if target is None:
            raise MissingArgumentError("target")

        if isinstance(target, ValueDescriptor):
            if target.reference not in self._descriptors:
                raise UnknownReferenceError(
                    target.reference,
                    "Specified descriptor does not belong to the protocol associated with this dataset.",
                )
            return self._store(target, value)

        if not target.strip():
            raise UnknownReferenceError(target, "Cannot add a value for an unnamed descriptor.")

        descriptor = self._descriptors.get(target)
        if descriptor is None:
            raise UnknownReferenceError(target)

        return self._store(descriptor, value)

    def calculate(self) -> None:
        """Validate stored values and evaluate calculated fields.

        Does not clear issues from previous calls.
        """
        base_fields = [d for d in self._descriptors.values() if not d.is_calculated]
        self._check_rules(base_fields, warnings=True)
        if not self._check_rules(base_fields, warnings=False):
            logger.debug("Validation failed for base fields, calculated fields skipped")
            return

        calculated_fields = self._populate_calculated_values()
        self._check_rules(calculated_fields, warnings=True)
        self._check_rules(calculated_fields, warnings=False)

        self._dirty = False

    def to_submission_values(self) -> list[SubmissionValue]:
        """Render stored values as persistence rows."""
        rows: list[SubmissionValue] = []
        for item in self._values.values():
            value = item.value
            kind = kind_of(value)
            if kind is ValueKind.NUMBER:
                rows.append(SubmissionValue(item.reference, number=float(value)))
            elif kind is ValueKind.NULL:
                rows.append(SubmissionValue(item.reference))
            elif kind is ValueKind.SEQUENCE:
                rows.append(SubmissionValue(item.reference, text=json.dumps(list(value))))
            else:
                rows.append(SubmissionValue(item.reference, text=str(value)))
        return rows

    def _store(self, descriptor: ValueDescriptor, value: Any) -> DataSetValue:
        item = DataSetValue(descriptor, value)
        self._values[descriptor.reference] = item
        self._dirty = True
        return item

    def _populate_defaults(self) -> None:
        for descriptor in self._descriptors.values():
            if not descriptor.default_value_expression.strip():
                continue

            ok, value = self._evaluator.try_evaluate(descriptor, descriptor.default_value_expression)
            if ok:
                self._store(descriptor, value)

    def _populate_calculated_values(self) -> list[ValueDescriptor]:
        enabled = [d for d in self._descriptors.values() if d.is_calculated and self._is_enabled(d)]
        for descriptor in enabled:
            ok, value = self._evaluator.try_evaluate(descriptor, descriptor.calculated_value_expression)
            if ok:
                self._store(descriptor, value)
        return enabled

    def _is_enabled(self, descriptor: ValueDescriptor) -> bool:
        if not descriptor.enabled_if_expression.strip():
            return True

        ok, enabled = self._evaluator.try_evaluate_bool(descriptor, descriptor.enabled_if_expression)
        return enabled if ok else False

    def _check_rules(self, descriptors: list[ValueDescriptor], *, warnings: bool) -> bool:
        """Run warning-if (warnings=True) or valid-if rules; True when nothing was reported."""
        issue_count = 0
        for descriptor in descriptors:
            expression = descriptor.warning_if_expression if warnings else descriptor.valid_if_expression
            if not expression.strip():
                continue

            ok, result = self._evaluator.try_evaluate_bool(descriptor, expression)
            if not ok:
                continue

            triggered = result if warnings else not result
            if not triggered:
                continue

            message = descriptor.warning_message if warnings else descriptor.validation_message
            if not message.strip():
                stored = self._values.get(descriptor.reference)
                current = format_value(stored.value if stored is not None else None)
                message = f"Value '{current}' for '{descriptor.reference}' is not valid."

            if warnings:
                self._issues.add_warning(descriptor, message)
            else:
                self._issues.add_validation_error(descriptor, message)
            issue_count += 1

        return issue_count == 0
