"""Profile routes: username, bio, avatar, user directory and roles."""

from typing import Any

from apiflask import APIBlueprint

from plaza.api.rate_limiting import rate_limit_writes
from plaza.api.schemas import (
    SetUsernameRequest,
    UpdateBioRequest,
    UpdateRoleRequest,
    UploadAvatarRequest,
)
from plaza.api.utils import build_profile_response
from plaza.api.validation import validate_request
from plaza.auth.jwt_auth import require_auth
from plaza.db.models import db
from plaza.exceptions import ForbiddenError
from plaza.utils.files import decode_image
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("profiles", __name__, url_prefix="/api", tag="Profiles")


# ============================================================================
# Own Profile
# ============================================================================


@api.route("/profile", methods=["GET"])
@api.doc(responses=[401, 404])
@require_auth
def get_my_profile(user_id: str) -> dict[str, Any]:
    """Get the authenticated user's profile, including wallet balance.

    404 means the user has not picked a username yet.
    """
    profile = db.require_profile(user_id)
    return build_profile_response(profile, include_private=True)


@api.route("/profile/username", methods=["PUT"])
@api.doc(responses=[400, 401, 409, 429])
@rate_limit_writes
@require_auth
@validate_request(SetUsernameRequest)
def set_username(user_id: str, data: SetUsernameRequest) -> dict[str, Any]:
    """Pick a username, or change it.

    Changing it also rewrites the name shown on the user's posts and messages.
    """
    if db.get_profile(user_id) is None:
        profile = db.set_username(user_id, data.username)
    else:
        profile = db.update_username(user_id, data.username)
    return build_profile_response(profile, include_private=True)


@api.route("/profile/bio", methods=["PUT"])
@api.doc(responses=[400, 401, 404, 429])
@rate_limit_writes
@require_auth
@validate_request(UpdateBioRequest)
def update_bio(user_id: str, data: UpdateBioRequest) -> dict[str, Any]:
    """Update the authenticated user's bio."""
    profile = db.update_bio(user_id, data.bio)
    return build_profile_response(profile, include_private=True)


@api.route("/profile/avatar", methods=["POST"])
@api.doc(responses=[400, 401, 404, 429])
@rate_limit_writes
@require_auth
@validate_request(UploadAvatarRequest)
def upload_avatar(user_id: str, data: UploadAvatarRequest) -> dict[str, Any]:
    """Upload a new avatar image (base64)."""
    image = decode_image(data.image.data, data.image.type, field="image.data")
    profile = db.set_avatar(user_id, image, data.image.type)
    return build_profile_response(profile, include_private=True)


# ============================================================================
# User Directory
# ============================================================================


@api.route("/users", methods=["GET"])
@api.doc(responses=[401])
@require_auth
def list_users(user_id: str) -> dict[str, Any]:
    """List all registered users, oldest first."""
    _ = user_id
    return {"users": [build_profile_response(p) for p in db.list_users()]}


@api.route("/users/<target_id>", methods=["GET"])
@api.doc(responses=[401, 404])
@require_auth
def get_user(user_id: str, target_id: str) -> dict[str, Any]:
    """Get another user's public profile."""
    profile = db.require_profile(target_id)
    return build_profile_response(profile, include_private=user_id == target_id)


@api.route("/users/<target_id>/role", methods=["PUT"])
@api.doc(responses=[400, 401, 403, 404, 429])
@rate_limit_writes
@require_auth
@validate_request(UpdateRoleRequest)
def update_role(user_id: str, data: UpdateRoleRequest, target_id: str) -> dict[str, Any]:
    """Change a user's role. Admins only."""
    if not db.is_admin(user_id):
        logger.warning(
            "Role change denied", extra={"user_id": user_id, "target_user_id": target_id}
        )
        raise ForbiddenError("Only admins can change roles")
    profile = db.update_role(target_id, data.role)
    return build_profile_response(profile)
