"""Protocol storage error types."""

from __future__ import annotations


class ProtocolFormatError(Exception):
    """Raised when a protocol document cannot be read.

    Attributes:
        message: Human-readable error message.
        errors: Individual problems (JSON, schema or model errors).
        path: Source file, when loading from disk.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[str] | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.path = path

    def __str__(self) -> str:
        parts = [self.message]
        if self.path:
            parts.append(f"path={self.path}")
        if self.errors:
            parts.append("; ".join(self.errors))
        return " ".join(parts)
