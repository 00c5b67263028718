"""Argument-contract errors raised by public model operations.

These indicate programmer error at the call site. They are never stored in
an issue collection: data and model problems are reported as issues instead.
"""

from __future__ import annotations


class MissingArgumentError(ValueError):
    """Raised when a required argument is None."""

    def __init__(self, argument: str) -> None:
        self.argument = argument
        super().__init__(f"Argument '{argument}' cannot be None.")


class UnknownReferenceError(ValueError):
    """Raised when a reference (or descriptor) does not belong to the protocol."""

    def __init__(self, reference: str, message: str | None = None) -> None:
        self.reference = reference
        super().__init__(message or f"Unknown reference ID: '{reference}'.")


class ProtocolMismatchError(ValueError):
    """Raised when datasets from different protocols are combined."""

    def __init__(self, expected: str | None, actual: str | None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"All accumulated values must belong to the same protocol "
            f"(expected '{expected}', got '{actual}')."
        )


class CultureMismatchError(ValueError):
    """Raised when accumulated datasets use different cultures for conversions."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"All accumulated values must use the same culture for conversions "
            f"(expected '{expected}', got '{actual}')."
        )


class InvalidDataSetError(ValueError):
    """Raised when a dataset with model or validation errors is used where a valid one is required."""

    def __init__(self, protocol_reference: str | None, error_count: int) -> None:
        self.protocol_reference = protocol_reference
        self.error_count = error_count
        super().__init__(
            f"Dataset for protocol '{protocol_reference}' has {error_count} model or "
            "validation issue(s) and cannot be used."
        )
