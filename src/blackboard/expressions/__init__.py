"""Expression language embedded in protocol descriptors.

The package is self-contained: parse(text) returns an immutable parsed
expression and evaluate(parsed, parameters=..., resolver=..., functions=...)
interprets it. Dataset-aware identifier resolution and the engine built-in
functions live in blackboard.model.evaluator.
"""

from blackboard.expressions.errors import (
    ExpressionError,
    ExpressionRuntimeError,
    ExpressionSyntaxError,
    UnresolvedIdentifierError,
)
from blackboard.expressions.language import ParsedExpression, parse
from blackboard.expressions.runtime import (
    BUILTINS,
    FunctionArgs,
    FunctionHandler,
    Scope,
    evaluate,
    to_number,
    to_truth,
    values_equal,
)

__all__ = [
    "BUILTINS",
    "ExpressionError",
    "ExpressionRuntimeError",
    "ExpressionSyntaxError",
    "FunctionArgs",
    "FunctionHandler",
    "ParsedExpression",
    "Scope",
    "UnresolvedIdentifierError",
    "evaluate",
    "parse",
    "to_number",
    "to_truth",
    "values_equal",
]
