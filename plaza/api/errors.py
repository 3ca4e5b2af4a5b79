"""Standardized error response utilities for the API.

This module provides a consistent error response format across all API endpoints,
enabling the frontend to properly categorize errors and implement appropriate
handling strategies (retry, user notification, etc.).

Domain exceptions raised by the database layer are translated here; route
handlers never build error bodies for them by hand.
"""

from enum import Enum
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from plaza.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    PlazaError,
    UnauthorizedError,
    ValidationError,
)
from plaza.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """Error codes for API responses.

    These codes provide semantic meaning for frontend error handling:
    - Frontend can determine if an error is retryable
    - Frontend can show appropriate user messages
    - Frontend can implement specific handling (e.g., re-auth for AUTH errors)
    """

    # Authentication errors
    AUTH_REQUIRED = "AUTH_REQUIRED"  # Missing authentication
    AUTH_INVALID = "AUTH_INVALID"  # Invalid token/credentials
    AUTH_EXPIRED = "AUTH_EXPIRED"  # Token expired
    AUTH_FORBIDDEN = "AUTH_FORBIDDEN"  # Valid auth but not the owner

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"  # Invalid input data
    INVALID_FORMAT = "INVALID_FORMAT"  # Body is not valid JSON

    # Resource errors
    NOT_FOUND = "NOT_FOUND"  # Resource doesn't exist
    CONFLICT = "CONFLICT"  # Uniqueness/state conflict or contention

    # Server errors (potentially retryable)
    SERVER_ERROR = "SERVER_ERROR"  # Generic server error
    RATE_LIMITED = "RATE_LIMITED"  # Too many requests


# Errors that the frontend may safely retry automatically (for idempotent operations)
RETRYABLE_ERRORS = {
    ErrorCode.RATE_LIMITED,
    ErrorCode.SERVER_ERROR,  # May be transient
}


def is_retryable(code: ErrorCode) -> bool:
    """Check if an error code indicates a retryable error."""
    return code in RETRYABLE_ERRORS


def create_error_response(
    code: ErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create a standardized error response.

    Args:
        code: Error code enum value
        message: Human-readable error message (safe to show to users)
        details: Optional additional details (e.g., field name for validation errors)

    Returns:
        Dict with standardized error structure:
        {
            "error": {
                "code": "ERROR_CODE",
                "message": "Human-readable message",
                "retryable": true/false,
                "details": {...}  # optional
            }
        }
    """
    error_data: dict[str, Any] = {
        "code": code.value,
        "message": message,
        "retryable": is_retryable(code),
    }

    if details:
        error_data["details"] = details

    return {"error": error_data}


# Convenience functions for common error types


def validation_error(message: str, field: str | None = None) -> tuple[dict[str, Any], int]:
    """Create a validation error response (400)."""
    details = {"field": field} if field else None
    return create_error_response(ErrorCode.VALIDATION_ERROR, message, details), 400


def not_found_error(resource: str = "Resource") -> tuple[dict[str, Any], int]:
    """Create a not found error response (404)."""
    return create_error_response(
        ErrorCode.NOT_FOUND,
        f"{resource} not found",
    ), 404


def auth_required_error() -> tuple[dict[str, Any], int]:
    """Create an authentication required error response (401)."""
    return create_error_response(
        ErrorCode.AUTH_REQUIRED,
        "Authentication required",
    ), 401


def auth_invalid_error(message: str = "Invalid credentials") -> tuple[dict[str, Any], int]:
    """Create an invalid authentication error response (401)."""
    return create_error_response(
        ErrorCode.AUTH_INVALID,
        message,
    ), 401


def auth_expired_error(message: str = "Token has expired") -> tuple[dict[str, Any], int]:
    """Create an expired authentication error response (401)."""
    return create_error_response(
        ErrorCode.AUTH_EXPIRED,
        message,
    ), 401


def server_error(
    message: str = "An unexpected error occurred. Please try again.",
) -> tuple[dict[str, Any], int]:
    """Create a generic server error response (500).

    Note: Never expose internal error details to users. Log them server-side instead.
    """
    return create_error_response(ErrorCode.SERVER_ERROR, message), 500


def invalid_json_error() -> tuple[dict[str, Any], int]:
    """Create an invalid JSON error response (400)."""
    return create_error_response(
        ErrorCode.INVALID_FORMAT,
        "Invalid JSON in request body",
    ), 400


# Order matters: subclasses before their bases
_DOMAIN_ERRORS: list[tuple[type[PlazaError], ErrorCode, int]] = [
    (NotFoundError, ErrorCode.NOT_FOUND, 404),
    (ConflictError, ErrorCode.CONFLICT, 409),
    (ForbiddenError, ErrorCode.AUTH_FORBIDDEN, 403),
    (UnauthorizedError, ErrorCode.AUTH_INVALID, 401),
    (ValidationError, ErrorCode.VALIDATION_ERROR, 400),
    (InternalError, ErrorCode.SERVER_ERROR, 500),
]


def domain_error_response(error: PlazaError) -> tuple[dict[str, Any], int]:
    """Translate a domain exception into the standardized response."""
    for error_type, code, status in _DOMAIN_ERRORS:
        if isinstance(error, error_type):
            return create_error_response(code, error.message, error.details), status
    return server_error()


def register_error_handlers(app: Flask) -> None:
    """Register handlers converting domain and HTTP errors to the standard format."""

    @app.errorhandler(PlazaError)
    def handle_domain_error(e: PlazaError) -> tuple[dict[str, Any], int]:
        body, status = domain_error_response(e)
        log = logger.error if status >= 500 else logger.info
        log(
            "Request failed",
            extra={
                "path": request.path,
                "method": request.method,
                "status_code": status,
                "error_type": type(e).__name__,
                "error": e.message,
            },
        )
        return body, status

    @app.errorhandler(404)
    def handle_not_found(e: HTTPException) -> tuple[dict[str, Any], int]:
        return not_found_error("Endpoint")

    @app.errorhandler(405)
    def handle_method_not_allowed(e: HTTPException) -> tuple[dict[str, Any], int]:
        return create_error_response(ErrorCode.VALIDATION_ERROR, "Method not allowed"), 405

    @app.errorhandler(413)
    def handle_too_large(e: HTTPException) -> tuple[dict[str, Any], int]:
        return validation_error("Uploaded file is too large", field="file")

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception) -> Any:
        if isinstance(e, HTTPException):
            return e
        logger.error(
            "Unhandled exception",
            extra={"path": request.path, "method": request.method, "error": str(e)},
            exc_info=True,
        )
        return server_error()
