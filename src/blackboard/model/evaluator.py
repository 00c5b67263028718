"""Dataset-bound evaluation of descriptor expressions.

ExpressionEvaluator connects the expression language to one DataSet:

- identifiers resolve to stored field values (case-insensitive);
- "this" aliases the reference of the field being evaluated;
- "required" is true when the field being evaluated has a stored value;
- an identifier ending with "?" evaluates to None when the field has no
  stored value instead of failing;
- "null" and every constant added with add_constant() take precedence over
  field values;
- the engine functions isnull, count, average, sum, let and sequence are
  available next to the language built-ins.

Evaluation failures never propagate: they are logged and recorded as
MODEL_ERROR issues against the field that owns the expression.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from blackboard.expressions import (
    ExpressionError,
    ExpressionRuntimeError,
    FunctionArgs,
    FunctionHandler,
    Scope,
    UnresolvedIdentifierError,
    evaluate,
)
from blackboard.model.aggregation import average_values, count_values, project, sum_values, unpack
from blackboard.model.conversions import InvalidCastError, ValueFormatError, to_boolean
from blackboard.model.errors import MissingArgumentError
from blackboard.model.references import ReferenceDict

if TYPE_CHECKING:
    from blackboard.model.dataset import DataSet
    from blackboard.model.descriptors import ValueDescriptor

logger = logging.getLogger(__name__)

IDENTIFIER_VALUE = "value"
IDENTIFIER_VALUES = "values"
IDENTIFIER_THIS = "this"
IDENTIFIER_REQUIRED = "required"
CONSTANT_NULL = "null"
MISSING_TOLERANT_SUFFIX = "?"


class _EngineFunctions:
    """Engine built-ins bound to the field being evaluated."""

    def __init__(self, dataset: DataSet, descriptor: ValueDescriptor) -> None:
        self._dataset = dataset
        self._descriptor = descriptor

    def table(self) -> dict[str, FunctionHandler]:
        return {
            "isnull": self.isnull,
            "count": self.count,
            "average": self.average,
            "sum": self.sum,
            "let": self.let,
            "sequence": self.sequence,
        }

    def isnull(self, args: FunctionArgs) -> bool:
        return any(value is None for value in args.evaluate_all())

    def count(self, args: FunctionArgs) -> int:
        return count_values(unpack(args.evaluate_all()))

    def average(self, args: FunctionArgs) -> float | None:
        return average_values(self._descriptor, self._dataset.culture, unpack(args.evaluate_all()))

    def sum(self, args: FunctionArgs) -> float:
        args.expect(1, 2)
        values = args.evaluate(0)
        if not isinstance(values, (list, tuple)):
            raise ExpressionRuntimeError("The first argument of sum() must be a set of values.")

        if len(args) == 2:
            values = project(values, lambda x: args.evaluate(1, {IDENTIFIER_VALUE: x}))

        return sum_values(self._descriptor, self._dataset.culture, values)

    def let(self, args: FunctionArgs) -> Any:
        args.expect(2)
        name = args.evaluate(0)
        if not isinstance(name, str) or not name.strip():
            raise ExpressionRuntimeError("The first argument of let() must be a name.")

        result = args.evaluate(1)
        args.scope.bind(name.strip(), result)
        return result

    def sequence(self, args: FunctionArgs) -> Any:
        results = args.evaluate_all()
        return results[-1] if results else None


class ExpressionEvaluator:
    """Evaluates descriptor expressions against a single DataSet."""

    def __init__(self, dataset: DataSet) -> None:
        if dataset is None:
            raise MissingArgumentError("dataset")

        self._dataset = dataset
        self._constants: ReferenceDict[Any] = ReferenceDict()

    def add_constant(self, name: str, value: Any) -> None:
        """Bind a constant visible to every expression evaluated afterwards.

        Re-adding an existing name (case-insensitive) replaces its value.
        """
        if name is None:
            raise MissingArgumentError("name")
        if not name.strip():
            raise ValueError("Constant name cannot be blank.")

        self._constants[name.strip()] = value

    def evaluate_unchecked(self, descriptor: ValueDescriptor, expression: str) -> Any:
        """Evaluate an expression on behalf of a field, raising on failure.

        Raises:
            ExpressionError: If the expression cannot be parsed or evaluated.
        """
        parameters = Scope({CONSTANT_NULL: None})
        for name, value in self._constants.items():
            parameters.bind(name, value)

        return evaluate(
            expression.replace("\r", "").replace("\n", " "),
            parameters=parameters,
            resolver=lambda name: self._resolve(descriptor, name),
            functions=_EngineFunctions(self._dataset, descriptor).table(),
        )

    def try_evaluate(self, descriptor: ValueDescriptor, expression: str) -> tuple[bool, Any]:
        """Evaluate an expression, recording any failure as a model error.

        Returns:
            (True, result) on success, (False, None) on failure.
        """
        try:
            return True, self.evaluate_unchecked(descriptor, expression)
        except ExpressionError as e:
            logger.debug(
                "Expression for %r failed: %s (%s)", descriptor.display_name, expression, e
            )
            self._record_failure(descriptor, expression, str(e))
            return False, None

    def try_evaluate_bool(self, descriptor: ValueDescriptor, expression: str) -> tuple[bool, bool]:
        """Evaluate an expression whose result must be boolean.

        The result is converted with the dataset culture; a None result or a
        failed conversion is recorded as a model error.
        """
        ok, result = self.try_evaluate(descriptor, expression)
        if not ok:
            return False, False

        if result is None:
            self._record_failure(descriptor, expression, "Expression returned null, a boolean was expected.")
            return False, False

        try:
            return True, to_boolean(self._dataset.culture, result)
        except (ValueFormatError, InvalidCastError, OverflowError) as e:
            logger.debug("Result of %r is not a boolean: %r", expression, result)
            self._record_failure(descriptor, expression, str(e))
            return False, False

    def evaluate(self, descriptor: ValueDescriptor, expression: str) -> Any:
        """Evaluate an expression; failures are recorded and yield None."""
        return self.try_evaluate(descriptor, expression)[1]

    def _record_failure(self, descriptor: ValueDescriptor, expression: str, reason: str) -> None:
        self._dataset.issues.add_model_error(
            descriptor,
            f"Value '{descriptor.display_name}': cannot evaluate expression '{expression}'. {reason}",
        )

    def _resolve(self, descriptor: ValueDescriptor, name: str) -> Any:
        reference = name
        if reference.casefold() == IDENTIFIER_THIS:
            reference = descriptor.reference

        if reference.casefold() == IDENTIFIER_REQUIRED:
            return descriptor.reference in self._dataset

        if reference.endswith(MISSING_TOLERANT_SUFFIX):
            stored = self._dataset.get(reference.rstrip(MISSING_TOLERANT_SUFFIX))
            return stored.value if stored is not None else None

        stored = self._dataset.get(reference)
        if stored is None:
            raise UnresolvedIdentifierError(name)
        return stored.value
