import sys
import uuid

from apiflask import APIFlask
from flask import Response, g, request

from plaza.api.errors import register_error_handlers
from plaza.api.rate_limiting import init_rate_limiting
from plaza.api.routes import register_blueprints
from plaza.config import Config
from plaza.utils.logging import get_logger, set_request_id, set_user_id, setup_logging


def create_app() -> APIFlask:
    """Create and configure the Flask application."""
    # Setup structured logging first
    setup_logging()
    logger = get_logger(__name__)
    logger.info(
        "Flask app created",
        extra={
            "environment": Config.FLASK_ENV,
            "log_level": Config.LOG_LEVEL,
        },
    )

    app = APIFlask(__name__, title="Plaza", version="1.0.0")
    # Base64 uploads are about 4/3 of the decoded size, plus the JSON envelope
    app.config["MAX_CONTENT_LENGTH"] = Config.MAX_FILE_SIZE * 2

    # Request ID middleware - must be before blueprints
    @app.before_request
    def add_request_id() -> None:
        """Generate and store request ID for correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)
        set_user_id(None)
        g.request_id = request_id

    # Log all requests
    @app.before_request
    def log_request() -> None:
        """Log incoming requests."""
        logger.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.path,
                "remote_addr": request.remote_addr,
                "user_agent": request.headers.get("User-Agent", ""),
            },
        )

    # Log responses
    @app.after_request
    def log_response(response: Response) -> Response:
        """Log outgoing responses."""
        logger.info(
            "Outgoing response",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "content_length": response.content_length,
            },
        )
        response.headers["X-Request-ID"] = g.get("request_id", "")
        return response

    register_error_handlers(app)
    init_rate_limiting(app)
    register_blueprints(app)

    return app


def main() -> None:
    """Main entry point."""
    # Setup logging early
    setup_logging()
    logger = get_logger(__name__)

    # Validate configuration
    errors = Config.validate()
    if errors:
        logger.error("Configuration validation failed", extra={"errors": errors})
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)

    app = create_app()
    logger.info(
        "Starting Plaza",
        extra={
            "port": Config.PORT,
            "environment": Config.FLASK_ENV,
            "log_level": Config.LOG_LEVEL,
        },
    )
    app.run(host="0.0.0.0", port=Config.PORT, debug=Config.is_development())


if __name__ == "__main__":
    main()
