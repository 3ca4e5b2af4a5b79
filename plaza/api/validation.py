"""Request validation utilities using Pydantic.

This module provides a decorator for validating Flask request bodies against
Pydantic schemas, converting validation errors to the standardized error
format used throughout the API.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import request
from pydantic import BaseModel, ValidationError

from plaza.api.errors import invalid_json_error, validation_error
from plaza.api.utils import get_request_json
from plaza.utils.logging import get_logger

logger = get_logger(__name__)


def pydantic_to_error_response(
    error: ValidationError,
) -> tuple[dict[str, Any], int]:
    """Convert Pydantic ValidationError to standardized API error response.

    Only the first error is reported; its location becomes the ``field``
    detail.
    """
    first_error = error.errors()[0]

    loc = first_error.get("loc", ())
    field = ".".join(str(x) for x in loc) if loc else None

    message = first_error.get("msg", "Invalid input")

    # Custom validators produce "Value error, <message>"
    if message.startswith("Value error, "):
        message = message[13:]

    logger.debug(
        "Pydantic validation failed",
        extra={
            "field": field,
            "message": message,
            "error_count": len(error.errors()),
        },
    )

    return validation_error(message, field=field)


def validate_request[T: BaseModel](
    schema_class: type[T],
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that validates request JSON against a Pydantic schema.

    Usage:
        @api.route("/endpoint", methods=["POST"])
        @require_auth
        @validate_request(MyRequestSchema)
        def my_endpoint(user_id: str, data: MyRequestSchema) -> ...:
            ...

    The validated model is passed after the positional arguments supplied by
    outer decorators (the user id from @require_auth) and before any URL
    parameters. Place this decorator AFTER @require_auth so that auth errors
    are returned before validation is attempted.
    """

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            data = get_request_json(request)
            if data is None:
                return invalid_json_error()

            try:
                validated = schema_class.model_validate(data)
            except ValidationError as e:
                return pydantic_to_error_response(e)

            return f(*args, validated, **kwargs)

        return wrapper

    return decorator
