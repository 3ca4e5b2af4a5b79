"""Post routes: feed, creation, likes, comments and the featured slot."""

from typing import Any

from apiflask import APIBlueprint
from flask import request

from plaza.api.rate_limiting import rate_limit_writes
from plaza.api.schemas import AddCommentRequest, CreatePostRequest, SetFeaturedRequest
from plaza.api.utils import build_comment_response, build_post_response
from plaza.api.validation import validate_request
from plaza.auth.jwt_auth import require_auth
from plaza.db.blob_store import get_blob_store, make_post_image_key
from plaza.db.keys import new_id
from plaza.db.models import db
from plaza.utils.files import decode_image
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("posts", __name__, url_prefix="/api", tag="Posts")


@api.route("/posts", methods=["GET"])
@api.doc(responses=[401])
@require_auth
def list_posts(user_id: str) -> dict[str, Any]:
    """List posts, newest first.

    Query parameters:
    - user_id: Only posts by this user ("me" for the caller)
    - featured: "true" to only return the featured post

    Featured posts older than the feature window are unfeatured before the
    list is read.
    """
    owner_id = request.args.get("user_id") or None
    if owner_id == "me":
        owner_id = user_id
    featured_only = request.args.get("featured", "").lower() == "true"

    posts = db.list_posts(owner_id=owner_id, featured_only=featured_only)
    logger.debug(
        "Posts listed",
        extra={"user_id": user_id, "owner_id": owner_id, "count": len(posts)},
    )
    return {"posts": [build_post_response(p, viewer_id=user_id) for p in posts]}


@api.route("/posts", methods=["POST"])
@api.doc(responses=[400, 401, 429])
@rate_limit_writes
@require_auth
@validate_request(CreatePostRequest)
def create_post(user_id: str, data: CreatePostRequest) -> tuple[dict[str, Any], int]:
    """Create a post with an optional base64 image.

    Creating a post as featured unfeatures the currently featured post.
    """
    post_id = new_id()
    image_url = image_path = None
    if data.image is not None:
        image = decode_image(data.image.data, data.image.type, field="image.data")
        image_path = make_post_image_key(post_id)
        image_url = get_blob_store().save(image_path, image, data.image.type)

    try:
        post = db.create_post(
            user_id,
            title=data.title,
            text=data.text,
            image_url=image_url,
            image_path=image_path,
            featured=data.featured,
            post_id=post_id,
        )
    except Exception:
        if image_path is not None:
            get_blob_store().delete(image_path)
            logger.info(
                "Removed image of failed post", extra={"post_id": post_id, "blob_key": image_path}
            )
        raise
    return {"post": build_post_response(post, viewer_id=user_id)}, 201


@api.route("/posts/<post_id>", methods=["GET"])
@api.doc(responses=[401, 404])
@require_auth
def get_post(user_id: str, post_id: str) -> dict[str, Any]:
    """Get a single post with its threaded comments."""
    post = db.require_post(post_id)
    return {"post": build_post_response(post, viewer_id=user_id)}


@api.route("/posts/<post_id>/like", methods=["POST"])
@api.doc(responses=[401, 404, 409, 429])
@rate_limit_writes
@require_auth
def like_post(user_id: str, post_id: str) -> dict[str, Any]:
    """Toggle the caller's like on a post."""
    result = db.like_post(post_id, user_id)
    return {"liked": result.present, "likes_count": result.count}


@api.route("/posts/<post_id>/comments", methods=["POST"])
@api.doc(responses=[400, 401, 404, 409, 429])
@rate_limit_writes
@require_auth
@validate_request(AddCommentRequest)
def add_comment(
    user_id: str, data: AddCommentRequest, post_id: str
) -> tuple[dict[str, Any], int]:
    """Comment on a post, or reply to a comment with parent_comment_id."""
    comment = db.add_comment(post_id, user_id, data.text, data.parent_comment_id)
    return {"comment": build_comment_response(comment)}, 201


@api.route("/posts/<post_id>/featured", methods=["PUT"])
@api.doc(responses=[400, 401, 403, 404, 409, 429])
@rate_limit_writes
@require_auth
@validate_request(SetFeaturedRequest)
def set_featured(user_id: str, data: SetFeaturedRequest, post_id: str) -> dict[str, Any]:
    """Feature or unfeature one of the caller's posts.

    Featuring a post unfeatures every other post.
    """
    post = db.set_featured(post_id, data.featured, user_id)
    return {"post": build_post_response(post, viewer_id=user_id)}


@api.route("/posts/<post_id>/featured/toggle", methods=["POST"])
@api.doc(responses=[401, 403, 404, 409, 429])
@rate_limit_writes
@require_auth
def toggle_featured(user_id: str, post_id: str) -> dict[str, Any]:
    """Flip the featured state of one of the caller's posts."""
    post = db.toggle_featured(post_id, user_id)
    return {"post": build_post_response(post, viewer_id=user_id)}
