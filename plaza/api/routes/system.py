"""System routes: health checks.

These routes are public and exempt from rate limiting.
"""

from typing import Any

from apiflask import APIBlueprint

from plaza.api.rate_limiting import exempt_from_rate_limit
from plaza.db.models import db
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("system", __name__, url_prefix="/api", tag="System")


@api.route("/health", methods=["GET"])
@exempt_from_rate_limit
def health_check() -> tuple[dict[str, str], int]:
    """Liveness probe - checks if the application process is running.

    This endpoint does not check the document store. Use /api/ready for that.
    """
    return {"status": "ok"}, 200


@api.route("/ready", methods=["GET"])
@api.doc(responses=[503])
@exempt_from_rate_limit
def readiness_check() -> tuple[dict[str, Any], int]:
    """Readiness probe - checks the document store answers queries.

    Returns:
        200: Application is ready to serve traffic
        503: The document store is not reachable
    """
    store_ok, store_error = db.store.ping()
    checks = {
        "document_store": {
            "status": "ok" if store_ok else "error",
            "message": "Connected" if store_ok else store_error,
        }
    }

    if not store_ok:
        logger.warning("Readiness check failed", extra={"checks": checks})
        return {"status": "not_ready", "checks": checks}, 503

    logger.debug("Readiness check passed")
    return {"status": "ready", "checks": checks}, 200
