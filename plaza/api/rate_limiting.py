"""Rate limiting module for API endpoints.

Uses Flask-Limiter with a configurable storage backend (memory, Redis,
Memcached). Requests are keyed per user when authenticated, or per IP
otherwise. Write endpoints carry a stricter limit than reads.

The limiter is created at import time so the route decorators can attach
their limits; ``init_rate_limiting`` binds it to the app.
"""

import re
from collections.abc import Callable
from typing import Any

from flask import Flask, g, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from plaza.api.errors import ErrorCode, create_error_response
from plaza.config import Config
from plaza.utils.logging import get_logger

logger = get_logger(__name__)


def get_rate_limit_key() -> str:
    """Get the rate limit key for the current request.

    Uses the user id if authenticated (set on ``g`` by @require_auth),
    otherwise falls back to the remote IP address.
    """
    user_id = getattr(g, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address()}"


limiter = Limiter(
    key_func=get_rate_limit_key,
    storage_uri=Config.RATE_LIMIT_STORAGE_URI,
    # Default limits apply to all endpoints not explicitly decorated
    default_limits=[Config.RATE_LIMIT_DEFAULT],
    headers_enabled=True,
    strategy="fixed-window",
    enabled=Config.RATE_LIMITING_ENABLED,
)


def init_rate_limiting(app: Flask) -> Limiter:
    """Bind the limiter to the app and install the 429 handler."""
    limiter.init_app(app)

    @app.errorhandler(429)
    def rate_limit_handler(e: Exception) -> tuple[dict[str, Any], int, dict[str, str]]:
        """Handle rate limit exceeded errors with our standard error format."""
        retry_after = None
        description = str(getattr(e, "description", ""))
        match = re.search(r"(\d+)\s*second", description)
        if match:
            retry_after = int(match.group(1))

        logger.warning(
            "Rate limit exceeded",
            extra={
                "key": get_rate_limit_key(),
                "path": request.path,
                "method": request.method,
                "retry_after": retry_after,
            },
        )

        details = {"retry_after": retry_after} if retry_after else None
        body = create_error_response(
            ErrorCode.RATE_LIMITED, "Too many requests. Please slow down.", details
        )
        headers = {"Retry-After": str(retry_after)} if retry_after else {}
        return body, 429, headers

    if Config.RATE_LIMITING_ENABLED:
        logger.info(
            "Rate limiting initialized",
            extra={
                "storage_uri": Config.RATE_LIMIT_STORAGE_URI,
                "default_limit": Config.RATE_LIMIT_DEFAULT,
                "write_limit": Config.RATE_LIMIT_WRITES,
            },
        )
    else:
        logger.info("Rate limiting is disabled")

    return limiter


def rate_limit_writes(f: Callable[..., Any]) -> Callable[..., Any]:
    """Apply the write endpoint rate limit.

    Use for: creating posts, comments, messages, chats and invites, toggles
    and transfers.
    """
    return limiter.limit(Config.RATE_LIMIT_WRITES)(f)


def exempt_from_rate_limit(f: Callable[..., Any]) -> Callable[..., Any]:
    """Exempt an endpoint from rate limiting.

    Use sparingly for endpoints that must always be available, like the
    health check.
    """
    return limiter.exempt(f)
