"""Exceptions raised while parsing or evaluating expressions."""

from __future__ import annotations


class ExpressionError(Exception):
    """Base class for every expression failure."""


class ExpressionSyntaxError(ExpressionError):
    """Raised when expression text cannot be parsed."""

    def __init__(self, expression: str, reason: str, position: int | None = None) -> None:
        self.expression = expression
        self.reason = reason
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Syntax error{where}: {reason}")


class UnresolvedIdentifierError(ExpressionError):
    """Raised when an identifier is neither a parameter nor a known reference."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Parameter '{name}' was not defined.")


class ExpressionRuntimeError(ExpressionError):
    """Raised when a well-formed expression fails during evaluation."""
