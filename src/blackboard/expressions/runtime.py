"""Interpreter for parsed expressions.

Evaluation walks the tree produced by language.parse(). Values are plain
Python primitives: None, bool, int, float, str, and sequences (list/tuple)
produced by host functions. Identifiers are looked up first in the
evaluation scope (case-insensitive), then handed to the host resolver.
Function calls go first to the host function table, then to the math
built-ins; arguments are evaluated lazily through FunctionArgs so functions
such as if() and let() control what gets evaluated.

Operators:
- '+' adds numbers; when either side is a string it adds numerically if
  both sides are numbers or numeric strings, otherwise concatenates.
- '-', '*', '/', '%' accept numbers and numeric strings.
- comparisons between a number and a numeric string are numeric; string
  comparisons ignore case.
- and/or/not coerce their operands to boolean.
"""

from __future__ import annotations

import ast
import math
import operator
import re
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from blackboard.expressions.errors import (
    ExpressionError,
    ExpressionRuntimeError,
    UnresolvedIdentifierError,
)
from blackboard.expressions.language import ParsedExpression, parse

FunctionHandler = Callable[["FunctionArgs"], Any]
Resolver = Callable[[str], Any]

_NUMERIC_TEXT = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


class Scope:
    """Case-insensitive parameter bindings, optionally chained to a parent."""

    def __init__(self, values: Mapping[str, Any] | None = None, parent: Scope | None = None) -> None:
        self._values: dict[str, Any] = {}
        self._parent = parent
        for name, value in (values or {}).items():
            self.bind(name, value)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        if name.casefold() in self._values:
            return True
        return self._parent is not None and name in self._parent

    def __getitem__(self, name: str) -> Any:
        key = name.casefold()
        if key in self._values:
            return self._values[key]
        if self._parent is not None:
            return self._parent[name]
        raise KeyError(name)

    def bind(self, name: str, value: Any) -> None:
        self._values[name.casefold()] = value

    def child(self, values: Mapping[str, Any] | None = None) -> Scope:
        return Scope(values, parent=self)


class FunctionArgs:
    """Lazily evaluated arguments of a function call."""

    def __init__(
        self,
        interpreter: _Interpreter,
        name: str,
        nodes: list[ast.expr],
        scope: Scope,
    ) -> None:
        self._interpreter = interpreter
        self._nodes = nodes
        self.name = name
        self.scope = scope

    def __len__(self) -> int:
        return len(self._nodes)

    def evaluate(self, index: int, bindings: Mapping[str, Any] | None = None) -> Any:
        """Evaluate one argument, optionally with extra bindings visible to it."""
        scope = self.scope.child(bindings) if bindings else self.scope
        return self._interpreter.visit(self._nodes[index], scope)

    def evaluate_all(self) -> list[Any]:
        return [self.evaluate(i) for i in range(len(self._nodes))]

    def expect(self, minimum: int, maximum: int | None = None) -> None:
        """Check the argument count.

        Raises:
            ExpressionRuntimeError: If the count is outside [minimum, maximum].
        """
        count = len(self._nodes)
        upper = minimum if maximum is None else maximum
        if count < minimum or count > upper:
            raise ExpressionRuntimeError(f"Invalid number of arguments for {self.name}().")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _try_number(value: Any) -> int | float | None:
    if _is_number(value):
        return float(value) if isinstance(value, Decimal) else value
    if isinstance(value, str):
        text = value.strip()
        if _NUMERIC_TEXT.match(text):
            return float(text)
    return None


def to_number(value: Any) -> int | float:
    """Coerce an operand to a number (invariant culture for strings).

    Raises:
        ExpressionRuntimeError: If the operand is not numeric.
    """
    number = _try_number(value)
    if number is None:
        kind = "null" if value is None else type(value).__name__
        raise ExpressionRuntimeError(f"Cannot use {kind} value {value!r} as a number.")
    return number


def to_truth(value: Any) -> bool:
    """Coerce an operand to boolean.

    Raises:
        ExpressionRuntimeError: If the operand has no boolean meaning.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0
    if isinstance(value, str):
        text = value.strip().casefold()
        if text in ("true", "false"):
            return text == "true"
    number = _try_number(value)
    if number is None:
        raise ExpressionRuntimeError(f"Cannot use value {value!r} as a boolean.")
    return number != 0


def to_text(value: Any) -> str:
    if value is None:
        raise ExpressionRuntimeError("Cannot concatenate a null value.")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_integer(value: Any) -> int:
    number = to_number(value)
    if isinstance(number, float):
        if not number.is_integer():
            raise ExpressionRuntimeError(f"Bitwise operators require integers, got {value!r}.")
        return int(number)
    return number


def _add(left: Any, right: Any) -> Any:
    if isinstance(left, str) or isinstance(right, str):
        left_number, right_number = _try_number(left), _try_number(right)
        if left_number is not None and right_number is not None:
            return left_number + right_number
        return to_text(left) + to_text(right)
    return to_number(left) + to_number(right)


def _divide(left: Any, right: Any) -> float:
    return to_number(left) / to_number(right)


def _modulo(left: Any, right: Any) -> int | float:
    left_number, right_number = to_number(left), to_number(right)
    result = math.fmod(left_number, right_number)
    if isinstance(left_number, int) and isinstance(right_number, int):
        return int(result)
    return result


def _bitwise(function: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    def apply(left: Any, right: Any) -> Any:
        if isinstance(left, bool) and isinstance(right, bool):
            return bool(function(left, right))
        return function(_to_integer(left), _to_integer(right))

    return apply


def _arithmetic(function: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    return lambda left, right: function(to_number(left), to_number(right))


_BINARY_OPERATORS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: _add,
    ast.Sub: _arithmetic(operator.sub),
    ast.Mult: _arithmetic(operator.mul),
    ast.Div: _divide,
    ast.Mod: _modulo,
    ast.BitAnd: _bitwise(operator.and_),
    ast.BitOr: _bitwise(operator.or_),
    ast.BitXor: _bitwise(operator.xor),
    ast.LShift: _bitwise(operator.lshift),
    ast.RShift: _bitwise(operator.rshift),
}


def _comparable(left: Any, right: Any) -> tuple[Any, Any]:
    if isinstance(left, str) and isinstance(right, str):
        return left.casefold(), right.casefold()
    if _is_number(left) and isinstance(right, str):
        number = _try_number(right)
        if number is not None:
            return left, number
    if isinstance(left, str) and _is_number(right):
        number = _try_number(left)
        if number is not None:
            return number, right
    return left, right


def _same_kind(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return True
    return type(left) is type(right)


def values_equal(left: Any, right: Any) -> bool:
    """Equality as defined by the '=' operator."""
    left, right = _comparable(left, right)
    if not _same_kind(left, right):
        return False
    return bool(left == right)


def _ordered(function: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def apply(left: Any, right: Any) -> bool:
        left, right = _comparable(left, right)
        if left is None or right is None or not _same_kind(left, right):
            raise ExpressionRuntimeError(f"Cannot compare {left!r} with {right!r}.")
        return bool(function(left, right))

    return apply


_COMPARISONS: dict[type[ast.cmpop], Callable[[Any, Any], bool]] = {
    ast.Eq: values_equal,
    ast.NotEq: lambda left, right: not values_equal(left, right),
    ast.Lt: _ordered(operator.lt),
    ast.LtE: _ordered(operator.le),
    ast.Gt: _ordered(operator.gt),
    ast.GtE: _ordered(operator.ge),
}


def _math1(function: Callable[[float], float]) -> FunctionHandler:
    def handler(args: FunctionArgs) -> float:
        args.expect(1)
        return function(to_number(args.evaluate(0)))

    return handler


def _if(args: FunctionArgs) -> Any:
    args.expect(3)
    return args.evaluate(1) if to_truth(args.evaluate(0)) else args.evaluate(2)


def _in(args: FunctionArgs) -> bool:
    if len(args) < 2:
        raise ExpressionRuntimeError("Invalid number of arguments for in().")
    needle = args.evaluate(0)
    return any(values_equal(needle, args.evaluate(i)) for i in range(1, len(args)))


def _log(args: FunctionArgs) -> float:
    args.expect(1, 2)
    value = to_number(args.evaluate(0))
    if len(args) == 1:
        return math.log(value)
    return math.log(value, to_number(args.evaluate(1)))


def _pow(args: FunctionArgs) -> float:
    args.expect(2)
    return math.pow(to_number(args.evaluate(0)), to_number(args.evaluate(1)))


def _ieee_remainder(args: FunctionArgs) -> float:
    args.expect(2)
    return math.remainder(to_number(args.evaluate(0)), to_number(args.evaluate(1)))


def _round(args: FunctionArgs) -> float:
    args.expect(1, 2)
    value = to_number(args.evaluate(0))
    digits = int(to_number(args.evaluate(1))) if len(args) == 2 else 0
    return float(round(value, digits))


def _sign(args: FunctionArgs) -> int:
    args.expect(1)
    value = to_number(args.evaluate(0))
    return (value > 0) - (value < 0)


def _extreme(function: Callable[..., Any]) -> FunctionHandler:
    def handler(args: FunctionArgs) -> Any:
        if len(args) == 0:
            raise ExpressionRuntimeError(f"Invalid number of arguments for {args.name}().")
        return function(to_number(value) for value in args.evaluate_all())

    return handler


BUILTINS: Mapping[str, FunctionHandler] = {
    "if": _if,
    "in": _in,
    "abs": _math1(abs),
    "acos": _math1(math.acos),
    "asin": _math1(math.asin),
    "atan": _math1(math.atan),
    "ceiling": _math1(lambda x: float(math.ceil(x))),
    "cos": _math1(math.cos),
    "exp": _math1(math.exp),
    "floor": _math1(lambda x: float(math.floor(x))),
    "ieeeremainder": _ieee_remainder,
    "log": _log,
    "log10": _math1(math.log10),
    "max": _extreme(max),
    "min": _extreme(min),
    "pow": _pow,
    "round": _round,
    "sign": _sign,
    "sin": _math1(math.sin),
    "sqrt": _math1(math.sqrt),
    "tan": _math1(math.tan),
    "truncate": _math1(lambda x: float(math.trunc(x))),
}


def _unresolved(name: str) -> Any:
    raise UnresolvedIdentifierError(name)


class _Interpreter:
    def __init__(
        self,
        expression: ParsedExpression,
        resolver: Resolver,
        functions: Mapping[str, FunctionHandler],
    ) -> None:
        self._expression = expression
        self._resolver = resolver
        self._functions = functions

    def visit(self, node: ast.expr, scope: Scope) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            name = self._expression.name_of(node)
            if name in scope:
                return scope[name]
            return self._resolver(name)

        if isinstance(node, ast.BoolOp):
            stop = isinstance(node.op, ast.Or)
            for value in node.values:
                if to_truth(self.visit(value, scope)) is stop:
                    return stop
            return not stop

        if isinstance(node, ast.UnaryOp):
            operand = self.visit(node.operand, scope)
            if isinstance(node.op, ast.Not):
                return not to_truth(operand)
            if isinstance(node.op, ast.USub):
                return -to_number(operand)
            if isinstance(node.op, ast.UAdd):
                return to_number(operand)
            return ~_to_integer(operand)

        if isinstance(node, ast.BinOp):
            left = self.visit(node.left, scope)
            right = self.visit(node.right, scope)
            return _BINARY_OPERATORS[type(node.op)](left, right)

        if isinstance(node, ast.Compare):
            left = self.visit(node.left, scope)
            for op, comparator in zip(node.ops, node.comparators, strict=True):
                right = self.visit(comparator, scope)
                if not _COMPARISONS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name):
                raise ExpressionRuntimeError("Invalid function call.")
            name = self._expression.name_of(node.func)
            key = name.casefold()
            handler = self._functions.get(key) or BUILTINS.get(key)
            if handler is None:
                raise ExpressionRuntimeError(f"Function '{name}' is not defined.")
            return handler(FunctionArgs(self, name, node.args, scope))

        raise ExpressionRuntimeError(f"Unsupported construct {type(node).__name__}.")


def evaluate(
    expression: ParsedExpression | str,
    *,
    parameters: Mapping[str, Any] | Scope | None = None,
    resolver: Resolver | None = None,
    functions: Mapping[str, FunctionHandler] | None = None,
) -> Any:
    """Evaluate an expression.

    Args:
        expression: Parsed expression or source text.
        parameters: Bindings visible to the expression; they take precedence
            over the resolver. let() adds bindings to a private child scope.
        resolver: Called for identifiers not found in parameters; must return
            the value or raise UnresolvedIdentifierError.
        functions: Host functions by (case-insensitive) name; they take
            precedence over the math built-ins.

    Raises:
        ExpressionSyntaxError: If the text cannot be parsed.
        UnresolvedIdentifierError: If an identifier cannot be resolved.
        ExpressionRuntimeError: For any other evaluation failure.
    """
    parsed = parse(expression) if isinstance(expression, str) else expression
    base = parameters if isinstance(parameters, Scope) else Scope(parameters)
    table = {name.casefold(): handler for name, handler in (functions or {}).items()}
    interpreter = _Interpreter(parsed, resolver or _unresolved, table)

    try:
        return interpreter.visit(parsed.tree, base.child())
    except ExpressionError:
        raise
    except (ArithmeticError, ValueError, TypeError, RecursionError) as e:
        raise ExpressionRuntimeError(f"{type(e).__name__}: {e}") from e
