"""Enumerations shared by the protocol model, datasets and aggregation."""

from __future__ import annotations

from enum import Flag, StrEnum


class TypeOfValue(StrEnum):
    """Declared type of a field.

    Values are the enum names so that persisted protocols carry them verbatim.
    """

    STRING = "String"
    DOUBLE = "Double"
    BOOLEAN = "Boolean"


class AggregationMode(StrEnum):
    """Preferred aggregation applied when datasets are combined."""

    NONE = "None"
    AVERAGE = "Average"
    SUM = "Sum"
    COUNT = "Count"


class IssueSeverity(StrEnum):
    """Severity of an issue found in a protocol or in a dataset.

    WARNING never blocks usability. MODEL_ERROR is a schema or expression
    authoring defect. VALIDATION_ERROR is a data problem.
    """

    WARNING = "Warning"
    MODEL_ERROR = "ModelError"
    VALIDATION_ERROR = "ValidationError"


class AggregationOptions(Flag):
    """Options that customize DataSetAggregator behavior."""

    DEFAULT = 0
    EXCLUDE_NULL_VALUES_FROM_COUNT = 1
    IGNORE_AGGREGATION_ERRORS = 2
