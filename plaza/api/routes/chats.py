"""Chat routes: chats, membership, messages and invites."""

from typing import Any

from apiflask import APIBlueprint

from plaza.api.rate_limiting import rate_limit_writes
from plaza.api.schemas import (
    ChatPictureRequest,
    CreateChatRequest,
    InviteRequest,
    SendMessageRequest,
)
from plaza.api.utils import (
    build_chat_response,
    build_invite_response,
    build_message_response,
)
from plaza.api.validation import validate_request
from plaza.auth.jwt_auth import require_auth
from plaza.db.models import MembershipChange, db
from plaza.utils.files import decode_image
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("chats", __name__, url_prefix="/api", tag="Chats")


def _membership_response(change: MembershipChange) -> dict[str, Any]:
    return {
        "chat": build_chat_response(change.chat),
        "changed": change.changed,
        "message": build_message_response(change.message) if change.message else None,
    }


# ============================================================================
# Chats
# ============================================================================


@api.route("/chats", methods=["GET"])
@api.doc(responses=[401])
@require_auth
def list_chats(user_id: str) -> dict[str, Any]:
    """Public chats and chats the caller belongs to, newest first."""
    return {"chats": [build_chat_response(c) for c in db.list_chats(user_id)]}


@api.route("/chats", methods=["POST"])
@api.doc(responses=[400, 401, 429])
@rate_limit_writes
@require_auth
@validate_request(CreateChatRequest)
def create_chat(user_id: str, data: CreateChatRequest) -> tuple[dict[str, Any], int]:
    """Create a chat with the caller as its first member."""
    chat = db.create_chat(
        user_id,
        data.name,
        data.description,
        is_public=data.is_public,
        image_url=data.image_url,
        background_url=data.background_url,
    )
    return {"chat": build_chat_response(chat)}, 201


@api.route("/chats/<chat_id>", methods=["GET"])
@api.doc(responses=[401, 403, 404])
@require_auth
def get_chat(user_id: str, chat_id: str) -> dict[str, Any]:
    """Get a chat. Private chats are visible to their members only."""
    return {"chat": build_chat_response(db.require_chat(chat_id, user_id))}


@api.route("/chats/<chat_id>", methods=["DELETE"])
@api.doc(responses=[401, 403, 404, 429])
@rate_limit_writes
@require_auth
def delete_chat(user_id: str, chat_id: str) -> dict[str, Any]:
    """Delete a chat and its messages. Creator only."""
    deleted = db.delete_chat(chat_id, user_id)
    return {"status": "deleted", "messages_deleted": deleted}


@api.route("/chats/<chat_id>/picture", methods=["POST"])
@api.doc(responses=[400, 401, 403, 404, 429])
@rate_limit_writes
@require_auth
@validate_request(ChatPictureRequest)
def upload_chat_picture(user_id: str, data: ChatPictureRequest, chat_id: str) -> dict[str, Any]:
    """Upload the chat's image or background. Creator only."""
    image = decode_image(data.image.data, data.image.type, field="image.data")
    field = "image_url" if data.target == "image" else "background_url"
    chat = db.set_chat_picture(chat_id, user_id, image, data.image.type, field)
    return {"chat": build_chat_response(chat)}


# ============================================================================
# Membership
# ============================================================================


@api.route("/chats/<chat_id>/join", methods=["POST"])
@api.doc(responses=[401, 404, 409, 429])
@rate_limit_writes
@require_auth
def join_chat(user_id: str, chat_id: str) -> dict[str, Any]:
    """Join a chat. Joining twice changes nothing."""
    return _membership_response(db.join_chat(chat_id, user_id))


@api.route("/chats/<chat_id>/leave", methods=["POST"])
@api.doc(responses=[401, 404, 409, 429])
@rate_limit_writes
@require_auth
def leave_chat(user_id: str, chat_id: str) -> dict[str, Any]:
    """Leave a chat. Leaving a chat you are not in changes nothing."""
    return _membership_response(db.leave_chat(chat_id, user_id))


# ============================================================================
# Messages
# ============================================================================


@api.route("/chats/<chat_id>/messages", methods=["GET"])
@api.doc(responses=[401, 403, 404])
@require_auth
def list_messages(user_id: str, chat_id: str) -> dict[str, Any]:
    """Messages of a chat, oldest first."""
    messages = db.list_messages(chat_id, user_id)
    return {"messages": [build_message_response(m) for m in messages]}


@api.route("/chats/<chat_id>/messages", methods=["POST"])
@api.doc(responses=[400, 401, 403, 404, 429])
@rate_limit_writes
@require_auth
@validate_request(SendMessageRequest)
def send_message(
    user_id: str, data: SendMessageRequest, chat_id: str
) -> tuple[dict[str, Any], int]:
    """Send a message, optionally as a reply to another message."""
    message = db.send_message(chat_id, user_id, data.text, data.reply_to)
    return {"message": build_message_response(message)}, 201


@api.route("/chats/<chat_id>/messages/<message_id>/view", methods=["POST"])
@api.doc(responses=[401, 403, 404, 409, 429])
@rate_limit_writes
@require_auth
def view_message(user_id: str, chat_id: str, message_id: str) -> dict[str, bool]:
    """Record that the caller has seen a message."""
    return {"first_view": db.view_message(chat_id, message_id, user_id)}


# ============================================================================
# Invites
# ============================================================================


@api.route("/chats/<chat_id>/invites", methods=["POST"])
@api.doc(responses=[400, 401, 403, 404, 409, 429])
@rate_limit_writes
@require_auth
@validate_request(InviteRequest)
def send_invite(user_id: str, data: InviteRequest, chat_id: str) -> tuple[dict[str, Any], int]:
    """Invite a user into a chat. The caller must be a member."""
    invite = db.send_invite(chat_id, user_id, data.user_id)
    return {"invite": build_invite_response(invite)}, 201


@api.route("/invites", methods=["GET"])
@api.doc(responses=[401])
@require_auth
def list_invites(user_id: str) -> dict[str, Any]:
    """Pending invites addressed to the caller."""
    return {"invites": [build_invite_response(i) for i in db.list_pending_invites(user_id)]}


@api.route("/invites/<invite_id>/accept", methods=["POST"])
@api.doc(responses=[401, 404, 409, 429])
@rate_limit_writes
@require_auth
def accept_invite(user_id: str, invite_id: str) -> dict[str, Any]:
    """Accept an invite and join its chat."""
    invite = db.accept_invite(invite_id, user_id)
    return {
        "invite": build_invite_response(invite),
        "chat": build_chat_response(db.require_chat(invite.chat_id)),
    }


@api.route("/invites/<invite_id>/reject", methods=["POST"])
@api.doc(responses=[401, 404, 409, 429])
@rate_limit_writes
@require_auth
def reject_invite(user_id: str, invite_id: str) -> dict[str, Any]:
    """Reject an invite."""
    return {"invite": build_invite_response(db.reject_invite(invite_id, user_id))}
