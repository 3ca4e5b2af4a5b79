"""API request parsing and response building utilities."""

from typing import Any

from flask import Request

from plaza.db.comment_tree import CommentTree
from plaza.db.models import (
    Chat,
    CommentNode,
    FollowStats,
    Invite,
    Message,
    Notification,
    PlayerStats,
    Post,
    Transaction,
    UserProfile,
)
from plaza.utils.logging import get_logger

logger = get_logger(__name__)


def get_request_json(req: Request) -> dict[str, Any] | None:
    """Parse the request body as a JSON object.

    Returns None when the body is missing, malformed, or not an object.
    """
    data = req.get_json(silent=True)
    if not isinstance(data, dict):
        logger.debug("Request body is not a JSON object", extra={"path": req.path})
        return None
    return data


def _timestamp(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


def build_profile_response(profile: UserProfile, include_private: bool = False) -> dict[str, Any]:
    """Public profile fields. Email and wallet only for the profile owner."""
    data: dict[str, Any] = {
        "user_id": profile.user_id,
        "username": profile.username,
        "bio": profile.bio,
        "avatar_url": profile.avatar_url,
        "role": profile.role,
        "created_at": profile.created_at.isoformat(),
    }
    if include_private:
        data["email"] = profile.email
        data["wallet_balance"] = profile.wallet_balance
        data["last_roulette_spin"] = _timestamp(profile.last_roulette_spin)
    return data


def _comment_fields(node: CommentNode) -> dict[str, Any]:
    return {
        "comment_id": node.comment_id,
        "user_id": node.user_id,
        "username": node.username,
        "avatar_url": node.avatar_url,
        "text": node.text,
        "parent_comment_id": node.parent_comment_id,
        "depth": node.depth,
        "created_at": node.created_at.isoformat(),
    }


def build_comment_response(node: CommentNode) -> dict[str, Any]:
    return {**_comment_fields(node), "replies": []}


def build_post_response(post: Post, viewer_id: str | None = None) -> dict[str, Any]:
    """Post with like summary and the comment forest nested for display."""
    tree = CommentTree.of(post)
    return {
        "post_id": post.post_id,
        "user_id": post.user_id,
        "username": post.username,
        "avatar_url": post.avatar_url,
        "title": post.title,
        "text": post.text,
        "image_url": post.image_url,
        "featured": post.featured,
        "featured_at": _timestamp(post.featured_at),
        "likes": list(post.likes),
        "likes_count": len(post.likes),
        "has_liked": viewer_id in post.likes if viewer_id else False,
        "comments": tree.nested(_comment_fields),
        "comments_count": len(tree),
        "created_at": post.created_at.isoformat(),
    }


def build_chat_response(chat: Chat) -> dict[str, Any]:
    return {
        "chat_id": chat.chat_id,
        "name": chat.name,
        "description": chat.description,
        "image_url": chat.image_url,
        "background_url": chat.background_url,
        "created_by": chat.created_by,
        "is_public": chat.is_public,
        "members": list(chat.members),
        "member_count": len(chat.members),
        "created_at": chat.created_at.isoformat(),
    }


def build_message_response(message: Message) -> dict[str, Any]:
    return {
        "message_id": message.message_id,
        "chat_id": message.chat_id,
        "user_id": message.user_id,
        "username": message.username,
        "avatar_url": message.avatar_url,
        "text": message.text,
        "reply_to": message.reply_to,
        "reply_to_text": message.reply_to_text,
        "reply_to_username": message.reply_to_username,
        "viewed_by": list(message.viewed_by),
        "is_system_message": message.is_system_message,
        "created_at": message.created_at.isoformat(),
    }


def build_notification_response(notification: Notification) -> dict[str, Any]:
    data = notification.to_document()
    data.pop("kind", None)
    return data


def build_invite_response(invite: Invite) -> dict[str, Any]:
    data = invite.to_document()
    data.pop("kind", None)
    return data


def build_follow_stats_response(stats: FollowStats) -> dict[str, Any]:
    return {
        "followers": [f.follower_id for f in stats.followers],
        "following": [f.following_id for f in stats.following],
        "followers_count": stats.followers_count,
        "following_count": stats.following_count,
    }


def build_stats_response(stats: PlayerStats) -> dict[str, Any]:
    return {
        "health": stats.health,
        "hunger": stats.hunger,
        "thirst": stats.thirst,
        "alcoholism": stats.alcoholism,
    }


def build_transaction_response(transaction: Transaction) -> dict[str, Any]:
    data = transaction.to_document()
    data.pop("kind", None)
    return data
