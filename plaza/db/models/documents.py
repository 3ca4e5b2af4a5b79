"""Document schemas for every entity kind kept in the document store.

Each schema carries a literal ``kind`` tag equal to the first segment of its
key, so a stored document always says what it is. ``validate_document`` is
installed as the store's write hook: a document that does not match the
schema registered for its key prefix is rejected before anything is written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from plaza.db.keys import kind_of
from plaza.exceptions import ValidationError

InviteStatus = Literal["pending", "accepted", "rejected"]
NotificationType = Literal["like", "comment", "follow", "chat_invite"]


class Document(BaseModel):
    """Base class for stored documents."""

    model_config = ConfigDict(extra="forbid")

    def to_document(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible dict the store persists."""
        return self.model_dump(mode="json")


class UserProfile(Document):
    """A user's public profile plus wallet balance."""

    kind: Literal["user"] = "user"
    user_id: str
    email: str | None = None
    username: str
    bio: str = ""
    avatar_url: str | None = None
    avatar_path: str | None = None
    role: str = "user"
    wallet_balance: int = Field(default=0, ge=0)
    last_roulette_spin: datetime | None = None
    created_at: datetime


class CommentNode(BaseModel):
    """One comment in a post's comment arena.

    Children are referenced by id (``reply_ids``), never embedded.
    """

    model_config = ConfigDict(extra="forbid")

    comment_id: str
    user_id: str
    username: str
    avatar_url: str | None = None
    text: str = Field(..., min_length=1)
    parent_comment_id: str | None = None
    reply_ids: list[str] = Field(default_factory=list)
    depth: int = Field(default=0, ge=0)
    created_at: datetime


class Post(Document):
    kind: Literal["post"] = "post"
    post_id: str
    user_id: str
    username: str
    avatar_url: str | None = None
    title: str = ""
    text: str = ""
    image_url: str | None = None
    image_path: str | None = None
    featured: bool = False
    featured_at: datetime | None = None
    likes: list[str] = Field(default_factory=list)
    comments: dict[str, CommentNode] = Field(default_factory=dict)
    comment_roots: list[str] = Field(default_factory=list)
    created_at: datetime

    @model_validator(mode="after")
    def check_feature_stamp(self) -> Post:
        """A feature stamp only exists while the post is featured."""
        if self.featured and self.featured_at is None:
            raise ValueError("featured posts must carry featured_at")
        if not self.featured and self.featured_at is not None:
            raise ValueError("featured_at is only allowed on featured posts")
        return self


class Chat(Document):
    kind: Literal["chat"] = "chat"
    chat_id: str
    name: str = Field(..., min_length=1)
    description: str = ""
    image_url: str = ""
    background_url: str = ""
    created_by: str
    is_public: bool = False
    members: list[str] = Field(default_factory=list)
    created_at: datetime


class Message(Document):
    kind: Literal["message"] = "message"
    message_id: str
    chat_id: str
    user_id: str
    username: str
    avatar_url: str | None = None
    text: str
    reply_to: str | None = None
    reply_to_text: str | None = None
    reply_to_username: str | None = None
    viewed_by: list[str] = Field(default_factory=list)
    is_system_message: bool = False
    created_at: datetime


class Follow(Document):
    """A follow edge. Its existence is the only state."""

    kind: Literal["follow"] = "follow"
    follower_id: str
    following_id: str
    created_at: datetime


class Notification(Document):
    kind: Literal["notification"] = "notification"
    notification_id: str
    user_id: str  # recipient
    type: NotificationType
    from_user_id: str
    from_username: str
    from_avatar_url: str | None = None
    post_id: str | None = None
    chat_id: str | None = None
    chat_name: str | None = None
    invite_id: str | None = None
    message: str | None = None
    is_read: bool = False
    created_at: datetime


class Invite(Document):
    kind: Literal["invite"] = "invite"
    invite_id: str
    chat_id: str
    chat_name: str
    from_user_id: str
    from_username: str
    to_user_id: str
    status: InviteStatus = "pending"
    created_at: datetime
    resolved_at: datetime | None = None


class PlayerStats(Document):
    kind: Literal["stats"] = "stats"
    user_id: str
    health: int = Field(default=100, ge=0, le=100)
    hunger: int = Field(default=100, ge=0, le=100)
    thirst: int = Field(default=100, ge=0, le=100)
    alcoholism: int = Field(default=0, ge=0, le=100)


class UsernameClaim(Document):
    """Marks a username as taken. Written in the same batch as the profile."""

    kind: Literal["username"] = "username"
    username: str
    user_id: str


class Transaction(Document):
    kind: Literal["transaction"] = "transaction"
    transaction_id: str
    from_user_id: str
    to_user_id: str
    amount: int = Field(..., gt=0)
    created_at: datetime


DOCUMENT_MODELS: dict[str, type[Document]] = {
    "user": UserProfile,
    "post": Post,
    "chat": Chat,
    "message": Message,
    "follow": Follow,
    "notification": Notification,
    "invite": Invite,
    "stats": PlayerStats,
    "transaction": Transaction,
    "username": UsernameClaim,
}


def validate_document(key: str, document: dict[str, Any]) -> dict[str, Any]:
    """Validate a document against the schema registered for its key prefix.

    Returns the normalized document. Raises ValidationError for unknown
    namespaces and malformed documents.
    """
    kind = kind_of(key)
    model = DOCUMENT_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown key namespace: {kind}", {"key": key})
    try:
        return model.model_validate(document).to_document()
    except PydanticValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(x) for x in first_error.get("loc", ()))
        raise ValidationError(
            f"Invalid {kind} document: {first_error.get('msg', 'invalid value')}",
            {"key": key, "field": field},
        ) from e
