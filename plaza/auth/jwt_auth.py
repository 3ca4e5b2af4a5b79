"""JWT bearer authentication.

Identity is issued elsewhere; this module only verifies tokens and exposes
the authenticated user id to route handlers.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from functools import wraps
from typing import Any

import jwt
from flask import Request, g, request

from plaza.api.errors import (
    auth_expired_error,
    auth_invalid_error,
    auth_required_error,
)
from plaza.config import Config
from plaza.db.keys import KEY_SEPARATOR
from plaza.utils.logging import get_logger, set_user_id

logger = get_logger(__name__)


class TokenStatus(Enum):
    """Status codes for token validation results."""

    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass
class TokenResult:
    """Result of token validation."""

    status: TokenStatus
    payload: dict[str, Any] | None = None
    error: str | None = None


def create_token(user_id: str, email: str | None = None) -> str:
    """Create a JWT token whose subject is ``user_id``."""
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": user_id,
        "exp": now + timedelta(hours=Config.JWT_EXPIRATION_HOURS),
        "iat": now,
    }
    if email:
        payload["email"] = email
    token = jwt.encode(payload, Config.JWT_SECRET_KEY, algorithm=Config.JWT_ALGORITHM)
    logger.debug("JWT token created", extra={"user_id": user_id})
    return token


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT token.

    Returns the payload dict if valid, None otherwise.
    For detailed status information, use decode_token_with_status() instead.
    """
    result = decode_token_with_status(token)
    return result.payload if result.status == TokenStatus.VALID else None


def decode_token_with_status(token: str) -> TokenResult:
    """Decode and validate a JWT token with detailed status."""
    try:
        payload: dict[str, Any] = jwt.decode(
            token, Config.JWT_SECRET_KEY, algorithms=[Config.JWT_ALGORITHM]
        )
        return TokenResult(status=TokenStatus.VALID, payload=payload)
    except jwt.ExpiredSignatureError:
        logger.warning("JWT token expired")
        return TokenResult(status=TokenStatus.EXPIRED, error="Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid JWT token", extra={"error": str(e)})
        return TokenResult(status=TokenStatus.INVALID, error=str(e))


def get_token_from_request(req: Request) -> str | None:
    """Extract JWT token from Authorization header."""
    auth_header = req.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


def get_current_user_id() -> str | None:
    """Get the authenticated user id from the request context."""
    return getattr(g, "user_id", None)


def require_auth[F: Callable[..., Any]](f: F) -> F:
    """Decorator to require authentication for a route.

    The authenticated user id is passed to the route as its first argument.

    Returns standardized error responses:
    - AUTH_REQUIRED (401): No token provided
    - AUTH_EXPIRED (401): Token has expired
    - AUTH_INVALID (401): Token is malformed, badly signed, or its subject is
      missing or not usable as a key segment
    """

    @wraps(f)
    def decorated(*args: Any, **kwargs: Any) -> Any:
        token = get_token_from_request(request)
        if not token:
            logger.warning("Missing authentication token", extra={"path": request.path})
            return auth_required_error()

        result = decode_token_with_status(token)

        if result.status == TokenStatus.EXPIRED:
            logger.warning("Token expired", extra={"path": request.path})
            return auth_expired_error("Your session has expired. Please sign in again.")

        if result.status == TokenStatus.INVALID:
            logger.warning("Invalid token", extra={"path": request.path, "error": result.error})
            return auth_invalid_error("Invalid authentication token")

        payload = result.payload
        assert payload is not None  # Guaranteed by VALID status

        user_id = payload.get("sub")
        if not user_id or not isinstance(user_id, str):
            logger.warning("Invalid token payload - missing sub", extra={"path": request.path})
            return auth_invalid_error("Invalid token payload")

        if KEY_SEPARATOR in user_id:
            logger.warning(
                "Invalid token payload - separator in sub", extra={"path": request.path}
            )
            return auth_invalid_error("Invalid token payload")

        g.user_id = user_id
        set_user_id(user_id)
        logger.debug("Authentication successful", extra={"user_id": user_id, "path": request.path})
        return f(user_id, *args, **kwargs)

    return decorated  # type: ignore[return-value]
