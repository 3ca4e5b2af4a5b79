"""Domain exceptions raised by the document store and the update protocols.

Each kind maps to one outward response (see plaza/api/errors.py).
Only InternalError is retryable.
"""

from typing import Any


class PlazaError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(PlazaError):
    """A referenced key or entity does not exist."""

    def __init__(self, resource: str = "Resource", details: dict[str, Any] | None = None) -> None:
        super().__init__(f"{resource} not found", details)
        self.resource = resource


class ConflictError(PlazaError):
    """An invariant or uniqueness rule would be violated, or optimistic retries ran out."""


class UnauthorizedError(PlazaError):
    """Caller identity is missing or invalid."""


class ForbiddenError(UnauthorizedError):
    """Caller is authenticated but does not own the resource being mutated."""


class ValidationError(PlazaError):
    """Malformed input or a document that does not match its schema."""


class InternalError(PlazaError):
    """Persistence I/O failure that survived the bounded retry."""


class VersionConflict(Exception):  # noqa: N818
    """A conditional write saw a different version than the one it was based on.

    Internal to the store layer: callers retry, and only surface ConflictError
    once attempts are exhausted.
    """

    def __init__(self, key: str, expected: int, actual: int) -> None:
        super().__init__(f"Version conflict on {key}: expected {expected}, found {actual}")
        self.key = key
        self.expected = expected
        self.actual = actual
