"""Blackboard CLI - validate protocols, calculate and aggregate datasets.

Usage:
    blackboard validate-protocol --protocol PATH
    blackboard calculate --protocol PATH [--values PATH] [--culture NAME]
    blackboard aggregate --protocol PATH --values PATH [PATH ...] [--culture NAME]
                         [--exclude-null-from-count] [--ignore-errors]

Value files are JSON objects mapping reference IDs to values; aggregate also
accepts files holding a list of such objects (one dataset each).

Exit codes:
    0: No errors (warnings allowed)
    1: Internal error (unexpected)
    2: Model/validation errors or unreadable input
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from blackboard.config import (
    ConfigError,
    configure_logging,
    get_default_aggregation_options,
    get_default_culture,
)
from blackboard.expressions import ExpressionSyntaxError, parse
from blackboard.model import (
    AggregationOptions,
    Culture,
    DataSet,
    DataSetAggregator,
    IssueSeverity,
    ProtocolDescriptor,
    UnknownCultureError,
)
from blackboard.model.errors import (
    CultureMismatchError,
    InvalidDataSetError,
    ProtocolMismatchError,
    UnknownReferenceError,
)
from blackboard.storage import ProtocolFormatError, load_file
from blackboard.validators import PROTOCOL_SCHEMA, SchemaValidator

# Expression slots checked for syntax by validate-protocol
EXPRESSION_FIELDS = (
    "default_value_expression",
    "calculated_value_expression",
    "valid_if_expression",
    "warning_if_expression",
    "enabled_if_expression",
    "transformation_for_aggregation",
    "aggregation_expression",
)


class InputError(Exception):
    """Raised when a command input file cannot be used."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _make_error_result(code: str, message: str) -> dict[str, Any]:
    """Create a failed result dict with a single error."""
    return {
        "errors": [{"code": code, "message": message, "path": "$"}],
        "pass": False,
        "warnings": [],
    }


def _read_json(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            content = f.read()
    except FileNotFoundError as e:
        raise InputError("FILE_NOT_FOUND", f"File not found: {path}") from e
    except OSError as e:
        raise InputError("UNREADABLE_INPUT", f"Cannot read input: {e}") from e

    if not content.strip():
        raise InputError("INVALID_JSON", f"Empty input: {path}")

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise InputError("INVALID_JSON", f"Invalid JSON in {path}: {e}") from e


def _load_protocol(path: str) -> ProtocolDescriptor:
    try:
        return load_file(path)
    except FileNotFoundError as e:
        raise InputError("FILE_NOT_FOUND", f"File not found: {path}") from e
    except OSError as e:
        raise InputError("UNREADABLE_INPUT", f"Cannot read input: {e}") from e
    except ProtocolFormatError as e:
        raise InputError("INVALID_PROTOCOL", str(e)) from e


def _load_value_sets(path: str) -> list[dict[str, Any]]:
    document = _read_json(path)
    sets = document if isinstance(document, list) else [document]
    if not all(isinstance(item, dict) for item in sets):
        raise InputError("INVALID_VALUES", f"{path}: expected an object of reference -> value")
    return sets


def _resolve_culture(name: str | None) -> Culture:
    if name is None:
        return get_default_culture()
    try:
        return Culture.from_name(name)
    except UnknownCultureError as e:
        raise InputError("UNKNOWN_CULTURE", str(e)) from e


def _build_dataset(protocol: ProtocolDescriptor, culture: Culture, values: dict[str, Any]) -> DataSet:
    dataset = DataSet(protocol, culture=culture)
    if not dataset.is_usable:
        return dataset

    for reference, value in values.items():
        dataset.add_value(reference, value)
    dataset.calculate()
    return dataset


def _dataset_to_dict(dataset: DataSet) -> dict[str, Any]:
    """Convert a dataset to a deterministic dict for JSON output."""
    issues = [
        {
            "message": issue.message,
            "reference": issue.reference,
            "severity": issue.severity.value,
        }
        for issue in dataset.issues
    ]
    return {
        "issues": issues,
        "pass": not dataset.issues.has_errors,
        "protocol": dataset.protocol.reference,
        "values": {item.reference: item.value for item in dataset},
    }


def _expression_errors(protocol: ProtocolDescriptor) -> list[dict[str, Any]]:
    errors = []
    for descriptor in protocol.iter_values():
        for field_name in EXPRESSION_FIELDS:
            expression = getattr(descriptor, field_name)
            if not expression.strip():
                continue
            try:
                parse(expression.replace("\r", "").replace("\n", " "))
            except ExpressionSyntaxError as e:
                errors.append(
                    {
                        "code": "EXPRESSION_SYNTAX",
                        "message": f"Value '{descriptor.display_name}': {e}",
                        "path": f"{descriptor.display_name}.{field_name}",
                    }
                )
    return errors


def cmd_validate_protocol(args: argparse.Namespace) -> int:
    """Validate a protocol document: JSON schema, model rules, expression syntax.

    Exit codes:
        0: pass=True (warnings allowed)
        2: pass=False
    """
    document = _read_json(args.protocol)

    schema_result = SchemaValidator().validate(PROTOCOL_SCHEMA, document)
    if not schema_result.passed:
        _output_json(
            {
                "errors": [
                    {"code": e.code, "message": e.message, "path": e.path} for e in schema_result.errors
                ],
                "pass": False,
                "warnings": [],
            }
        )
        return 2

    protocol = _load_protocol(args.protocol)
    errors: list[dict[str, Any]] = []
    warnings: list[dict[str, Any]] = []
    for issue in protocol.validate_model():
        entry = {
            "code": issue.severity.value,
            "message": issue.message,
            "path": getattr(issue.item, "display_name", "$"),
        }
        (warnings if issue.severity is IssueSeverity.WARNING else errors).append(entry)

    errors.extend(_expression_errors(protocol))

    _output_json({"errors": errors, "pass": not errors, "warnings": warnings})
    return 0 if not errors else 2


def cmd_calculate(args: argparse.Namespace) -> int:
    """Build and calculate one dataset.

    Exit codes:
        0: no errors
        2: model or validation errors
    """
    protocol = _load_protocol(args.protocol)
    culture = _resolve_culture(args.culture)
    values = _load_value_sets(args.values)[0] if args.values else {}

    dataset = _build_dataset(protocol, culture, values)
    result = _dataset_to_dict(dataset)
    _output_json(result)
    return 0 if result["pass"] else 2


def cmd_aggregate(args: argparse.Namespace) -> int:
    """Aggregate several datasets into one.

    Exit codes:
        0: no errors
        2: invalid input dataset or aggregation errors
    """
    protocol = _load_protocol(args.protocol)
    culture = _resolve_culture(args.culture)

    options = get_default_aggregation_options()
    if args.exclude_null_from_count:
        options |= AggregationOptions.EXCLUDE_NULL_VALUES_FROM_COUNT
    if args.ignore_errors:
        options |= AggregationOptions.IGNORE_AGGREGATION_ERRORS

    datasets = [
        _build_dataset(protocol, culture, values)
        for path in args.values
        for values in _load_value_sets(path)
    ]

    aggregator = DataSetAggregator(protocol, options)
    aggregator.accumulate(*datasets)
    result = _dataset_to_dict(aggregator.calculate())
    result["count"] = len(datasets)
    _output_json(result)
    return 0 if result["pass"] else 2


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="blackboard",
        description="OpenBlackboard - protocol and dataset calculation engine CLI",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    validate_parser = subparsers.add_parser(
        "validate-protocol",
        help="Validate a protocol document (schema, model rules, expression syntax)",
    )
    validate_parser.add_argument("--protocol", required=True, metavar="PATH", help="Protocol JSON file")

    calculate_parser = subparsers.add_parser(
        "calculate",
        help="Calculate a dataset from a values file",
    )
    calculate_parser.add_argument("--protocol", required=True, metavar="PATH", help="Protocol JSON file")
    calculate_parser.add_argument(
        "--values",
        required=False,
        default=None,
        metavar="PATH",
        help="JSON object of reference -> value (only defaults when omitted)",
    )
    calculate_parser.add_argument(
        "--culture",
        default=None,
        metavar="NAME",
        help="Culture for conversions (default: $BLACKBOARD_CULTURE or invariant)",
    )

    aggregate_parser = subparsers.add_parser(
        "aggregate",
        help="Aggregate several datasets of the same protocol",
    )
    aggregate_parser.add_argument("--protocol", required=True, metavar="PATH", help="Protocol JSON file")
    aggregate_parser.add_argument(
        "--values",
        required=True,
        nargs="+",
        metavar="PATH",
        help="Value files (an object, or a list of objects, per file)",
    )
    aggregate_parser.add_argument(
        "--culture",
        default=None,
        metavar="NAME",
        help="Culture for conversions (default: $BLACKBOARD_CULTURE or invariant)",
    )
    aggregate_parser.add_argument(
        "--exclude-null-from-count",
        action="store_true",
        default=False,
        help="Do not count null values for fields aggregated with Count",
    )
    aggregate_parser.add_argument(
        "--ignore-errors",
        action="store_true",
        default=False,
        help="Keep aggregating after a field reports an error",
    )

    return parser


_COMMANDS = {
    "validate-protocol": cmd_validate_protocol,
    "calculate": cmd_calculate,
    "aggregate": cmd_aggregate,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Internal error (unexpected)
        2: Errors in the input or in the calculated datasets
    """
    try:
        parser = create_parser()
        args = parser.parse_args(argv)

        if args.command is None:
            parser.print_help()
            return 0

        configure_logging()
        return _COMMANDS[args.command](args)

    except InputError as e:
        _output_json(_make_error_result(e.code, e.message))
        return 2
    except ConfigError as e:
        _output_json(_make_error_result("INVALID_CONFIG", str(e)))
        return 2
    except UnknownReferenceError as e:
        _output_json(_make_error_result("UNKNOWN_REFERENCE", str(e)))
        return 2
    except (InvalidDataSetError, ProtocolMismatchError, CultureMismatchError) as e:
        _output_json(_make_error_result("INVALID_DATASET", str(e)))
        return 2
    except Exception as e:
        # Fail-closed: unexpected errors return exit code 1
        _output_json(_make_error_result("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
