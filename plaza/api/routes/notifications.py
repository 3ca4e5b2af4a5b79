"""Notification routes: inbox and read state."""

from typing import Any

from apiflask import APIBlueprint

from plaza.api.rate_limiting import rate_limit_writes
from plaza.api.utils import build_notification_response
from plaza.auth.jwt_auth import require_auth
from plaza.db.models import db
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("notifications", __name__, url_prefix="/api", tag="Notifications")


@api.route("/notifications", methods=["GET"])
@api.doc(responses=[401])
@require_auth
def list_notifications(user_id: str) -> dict[str, Any]:
    """The caller's notifications, newest first, with the unread count."""
    notifications = db.list_notifications(user_id)
    return {
        "notifications": [build_notification_response(n) for n in notifications],
        "unread_count": sum(1 for n in notifications if not n.is_read),
    }


@api.route("/notifications/<notification_id>/read", methods=["POST"])
@api.doc(responses=[401, 404, 429])
@rate_limit_writes
@require_auth
def mark_read(user_id: str, notification_id: str) -> dict[str, Any]:
    """Mark one of the caller's notifications as read."""
    notification = db.mark_notification_read(user_id, notification_id)
    return {"notification": build_notification_response(notification)}


@api.route("/notifications/read-all", methods=["POST"])
@api.doc(responses=[401, 429])
@rate_limit_writes
@require_auth
def mark_all_read(user_id: str) -> dict[str, int]:
    """Mark all of the caller's notifications as read."""
    return {"updated": db.mark_all_notifications_read(user_id)}
