"""Follow routes: toggle following and follower statistics."""

from typing import Any

from apiflask import APIBlueprint

from plaza.api.rate_limiting import rate_limit_writes
from plaza.api.utils import build_follow_stats_response
from plaza.auth.jwt_auth import require_auth
from plaza.db.models import db
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("follows", __name__, url_prefix="/api", tag="Follows")


@api.route("/users/<target_id>/follow", methods=["POST"])
@api.doc(responses=[400, 401, 404, 409, 429])
@rate_limit_writes
@require_auth
def toggle_follow(user_id: str, target_id: str) -> dict[str, Any]:
    """Follow the user, or unfollow if already following."""
    db.require_profile(target_id)
    following = db.toggle_follow(user_id, target_id)
    return {"following": following}


@api.route("/users/<target_id>/follow-stats", methods=["GET"])
@api.doc(responses=[401])
@require_auth
def follow_stats(user_id: str, target_id: str) -> dict[str, Any]:
    """Followers and followed users of a user."""
    _ = user_id
    return build_follow_stats_response(db.follow_stats(target_id))


@api.route("/users/<target_id>/is-following", methods=["GET"])
@api.doc(responses=[401])
@require_auth
def is_following(user_id: str, target_id: str) -> dict[str, bool]:
    """Whether the caller follows the user."""
    return {"following": db.is_following(user_id, target_id)}
