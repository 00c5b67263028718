"""Protocol model, datasets and aggregation."""

from blackboard.model.enums import AggregationMode, AggregationOptions, IssueSeverity, TypeOfValue
from blackboard.model.errors import (
    CultureMismatchError,
    InvalidDataSetError,
    MissingArgumentError,
    ProtocolMismatchError,
    UnknownReferenceError,
)
from blackboard.model.conversions import (
    Culture,
    InvalidCastError,
    UnknownCultureError,
    ValueFormatError,
    ValueKind,
    kind_of,
    parse_number,
    to_boolean,
    to_number,
)
from blackboard.model.references import ReferenceDict, normalize_reference
from blackboard.model.issues import DataError, IssueCollection, ModelError
from blackboard.model.descriptors import (
    ListItem,
    NamedItemDescriptor,
    ProtocolDescriptor,
    SectionDescriptor,
    ValueDescriptor,
)
from blackboard.model.evaluator import ExpressionEvaluator
from blackboard.model.dataset import DataSet, DataSetValue, SubmissionValue
from blackboard.model.accumulator import DataSetValueAccumulator
from blackboard.model.aggregator import DataSetAggregator

__all__ = [
    "AggregationMode",
    "AggregationOptions",
    "Culture",
    "CultureMismatchError",
    "DataError",
    "DataSet",
    "DataSetAggregator",
    "DataSetValue",
    "DataSetValueAccumulator",
    "ExpressionEvaluator",
    "InvalidCastError",
    "InvalidDataSetError",
    "IssueCollection",
    "IssueSeverity",
    "ListItem",
    "MissingArgumentError",
    "ModelError",
    "NamedItemDescriptor",
    "ProtocolDescriptor",
    "ProtocolMismatchError",
    "ReferenceDict",
    "SectionDescriptor",
    "SubmissionValue",
    "TypeOfValue",
    "UnknownCultureError",
    "UnknownReferenceError",
    "ValueDescriptor",
    "ValueFormatError",
    "ValueKind",
    "kind_of",
    "normalize_reference",
    "parse_number",
    "to_boolean",
    "to_number",
]
