"""Protocol model: protocol -> sections -> value descriptors.

The model is a plain tree of pydantic models mirroring the persisted JSON
document 1:1 (PascalCase aliases). It is mutable while a protocol is being
authored but must be treated as read-only once any DataSet has been created
against it.

Expressions stored in descriptors are not parsed here; validate_model() only
checks structural rules. Expression problems surface as model errors when a
dataset evaluates them.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from blackboard.model.enums import AggregationMode, IssueSeverity, TypeOfValue
from blackboard.model.issues import ModelError
from blackboard.model.references import normalize_reference

_MODEL_CONFIG = ConfigDict(
    alias_generator=to_pascal,
    populate_by_name=True,
    extra="forbid",
)


def _is_blank(text: str | None) -> bool:
    return text is None or not text.strip()


class ListItem(BaseModel):
    """One permitted literal value of a field (display name + stored value)."""

    model_config = _MODEL_CONFIG

    name: str = ""
    value: str = ""


class NamedItemDescriptor(BaseModel):
    """Common descriptive attributes of protocols, sections and fields."""

    model_config = _MODEL_CONFIG

    name: str = ""
    short_name: str = ""
    description: str = ""


class ValueDescriptor(NamedItemDescriptor):
    """Description of a single field that may be submitted in a DataSet.

    Two descriptors compare equal when they have the same reference ID
    (case-insensitive); the hash follows the same rule.
    """

    reference: str = Field(
        default="",
        description="Unique (case-insensitive) ID, also used in expressions. "
        "May be blank only for calculated fields.",
    )
    type: TypeOfValue = TypeOfValue.DOUBLE
    available_values: list[ListItem] = Field(default_factory=list)
    default_value_expression: str = Field(default="", alias="DefaultValue")
    calculated_value_expression: str = Field(default="", alias="CalculatedValue")
    valid_if_expression: str = Field(default="", alias="ValidIf")
    validation_message: str = ""
    warning_if_expression: str = Field(default="", alias="WarningIf")
    warning_message: str = ""
    enabled_if_expression: str = Field(default="", alias="EnabledIf")
    visible_if_expression: str = Field(
        default="",
        alias="VisibleIf",
        description="Presentation only, never evaluated by the engine.",
    )
    preferred_aggregation: AggregationMode = AggregationMode.NONE
    transformation_for_aggregation: str = ""
    aggregation_expression: str = Field(
        default="",
        description="Custom aggregation; receives accumulated values as 'values'.",
    )
    children: list[ValueDescriptor] = Field(default_factory=list)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValueDescriptor):
            return NotImplemented
        return normalize_reference(self.reference) == normalize_reference(other.reference)

    def __hash__(self) -> int:
        return hash(normalize_reference(self.reference))

    def __repr__(self) -> str:
        return f"ValueDescriptor(reference={self.reference!r}, type={self.type.value})"

    @property
    def is_calculated(self) -> bool:
        return not _is_blank(self.calculated_value_expression)

    @property
    def display_name(self) -> str:
        return self.name if _is_blank(self.reference) else self.reference

    def iter_values(self) -> Iterator[ValueDescriptor]:
        """Yield this descriptor followed by all its descendants (depth-first)."""
        yield self
        for child in self.children:
            yield from child.iter_values()

    def validate_model(self) -> list[ModelError]:
        """Check the structural rules of this single field (children excluded)."""
        issues: list[ModelError] = []
        is_calculated = self.is_calculated

        if not is_calculated and _is_blank(self.reference):
            issues.append(self._error("Editable field must have a reference ID."))

        if is_calculated and self.available_values:
            issues.append(self._error("AvailableValues cannot be used for calculated fields."))

        if is_calculated and not _is_blank(self.default_value_expression):
            issues.append(self._error("DefaultValue cannot be specified for calculated fields."))

        if not _is_blank(self.validation_message) and _is_blank(self.valid_if_expression):
            issues.append(self._warning("ValidationMessage should not be specified without ValidIf."))

        if not _is_blank(self.warning_message) and _is_blank(self.warning_if_expression):
            issues.append(self._warning("WarningMessage should not be specified without WarningIf."))

        has_custom_aggregation = not _is_blank(self.aggregation_expression)
        if has_custom_aggregation and self.preferred_aggregation is not AggregationMode.NONE:
            issues.append(
                self._warning(
                    f"Aggregation mode {self.preferred_aggregation.value} is ignored "
                    "because AggregationExpression is specified."
                )
            )

        if _is_blank(self.transformation_for_aggregation):
            requires_number = self.preferred_aggregation in (
                AggregationMode.AVERAGE,
                AggregationMode.SUM,
            )
            if self.type is TypeOfValue.STRING and requires_number and not has_custom_aggregation:
                issues.append(
                    self._error(
                        f"Aggregation mode {self.preferred_aggregation.value} cannot be used "
                        f"for type {self.type.value} without a transformation expression."
                    )
                )
        elif self.preferred_aggregation is AggregationMode.NONE and not has_custom_aggregation:
            issues.append(
                self._error(
                    "TransformationForAggregation cannot be specified with aggregation mode None."
                )
            )

        return issues

    def _error(self, message: str) -> ModelError:
        return ModelError(IssueSeverity.MODEL_ERROR, self, f"Value '{self.display_name}': {message}")

    def _warning(self, message: str) -> ModelError:
        return ModelError(IssueSeverity.WARNING, self, f"Value '{self.display_name}': {message}")


class SectionDescriptor(NamedItemDescriptor):
    """Named grouping of fields; purely organizational."""

    values: list[ValueDescriptor] = Field(default_factory=list)

    def iter_values(self) -> Iterator[ValueDescriptor]:
        for value in self.values:
            yield from value.iter_values()


class ProtocolDescriptor(NamedItemDescriptor):
    """A protocol: the schema every DataSet is built against."""

    reference: str = ""
    sections: list[SectionDescriptor] = Field(default_factory=list)

    def __getitem__(self, reference: str) -> ValueDescriptor:
        """Return the first field with the given reference (case-insensitive).

        Raises:
            KeyError: If no field has this reference.
        """
        descriptor = self.find(reference)
        if descriptor is None:
            raise KeyError(reference)
        return descriptor

    def __repr__(self) -> str:
        return f"ProtocolDescriptor(reference={self.reference!r}, sections={len(self.sections)})"

    def find(self, reference: str) -> ValueDescriptor | None:
        key = normalize_reference(reference)
        for descriptor in self.iter_values():
            if normalize_reference(descriptor.reference) == key:
                return descriptor
        return None

    def add_section(self, name: str, **attributes: Any) -> SectionDescriptor:
        """Append a new empty section and return it."""
        section = SectionDescriptor(name=name, **attributes)
        self.sections.append(section)
        return section

    def iter_values(self) -> Iterator[ValueDescriptor]:
        """Yield every field of every section in protocol order, recursively."""
        for section in self.sections:
            yield from section.iter_values()

    def validate_model(self) -> list[ModelError]:
        """Validate the whole protocol.

        Returns duplicate-reference errors (one per group of fields sharing a
        reference, attributed to the first occurrence) followed by every
        field-level issue.
        """
        all_values = list(self.iter_values())

        groups: dict[str, list[ValueDescriptor]] = {}
        for descriptor in all_values:
            if _is_blank(descriptor.reference):
                continue
            groups.setdefault(normalize_reference(descriptor.reference), []).append(descriptor)

        issues = [
            ModelError(
                IssueSeverity.MODEL_ERROR,
                group[0],
                f"Value '{group[0].reference}': multiple values with same reference ID.",
            )
            for group in groups.values()
            if len(group) > 1
        ]

        for descriptor in all_values:
            issues.extend(descriptor.validate_model())

        return issues
