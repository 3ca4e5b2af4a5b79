"""Pydantic schemas for API request validation.

This module defines Pydantic models for all API request payloads. These schemas
provide automatic validation of request structure, types, and constraints.

Image content validation (base64 decoding, size limits, type sniffing) is done
by decode_image() in plaza/utils/files.py after Pydantic validates the
structure.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from plaza.config import Config

Role = Literal["user", "member", "helper", "leader", "manager", "admin"]

# -----------------------------------------------------------------------------
# Image Schema (reusable)
# -----------------------------------------------------------------------------


class ImageUpload(BaseModel):
    """A base64-encoded image upload. Validates structure only."""

    type: str = Field(..., min_length=1)  # MIME type
    data: str = Field(..., min_length=1)  # Base64-encoded data

    @field_validator("type")
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Validate MIME type is in allowed list."""
        if v not in Config.ALLOWED_IMAGE_TYPES:
            allowed = ", ".join(sorted(Config.ALLOWED_IMAGE_TYPES))
            raise ValueError(f"Image type '{v}' not allowed. Allowed: {allowed}")
        return v


# -----------------------------------------------------------------------------
# Profile Schemas
# -----------------------------------------------------------------------------


class SetUsernameRequest(BaseModel):
    """Schema for PUT /api/profile/username."""

    username: str = Field(..., min_length=1, max_length=Config.USERNAME_MAX_LENGTH)


class UpdateBioRequest(BaseModel):
    """Schema for PUT /api/profile/bio."""

    bio: str = Field("", max_length=500)


class UploadAvatarRequest(BaseModel):
    """Schema for POST /api/profile/avatar."""

    image: ImageUpload


class UpdateRoleRequest(BaseModel):
    """Schema for PUT /api/users/<user_id>/role."""

    role: Role


# -----------------------------------------------------------------------------
# Post Schemas
# -----------------------------------------------------------------------------


class CreatePostRequest(BaseModel):
    """Schema for POST /api/posts."""

    title: str = Field("", max_length=200)
    text: str = Field("", max_length=10000)
    image: ImageUpload | None = None
    featured: bool = False

    @model_validator(mode="after")
    def validate_has_content(self) -> CreatePostRequest:
        """A post needs a title, some text, or an image."""
        if not self.title.strip() and not self.text.strip() and self.image is None:
            raise ValueError("Post must have a title, text or image")
        return self


class AddCommentRequest(BaseModel):
    """Schema for POST /api/posts/<post_id>/comments."""

    text: str = Field(..., min_length=1, max_length=Config.COMMENT_MAX_LENGTH)
    parent_comment_id: str | None = None

    @field_validator("text")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Comment text is required")
        return v


class SetFeaturedRequest(BaseModel):
    """Schema for PUT /api/posts/<post_id>/featured."""

    featured: bool


# -----------------------------------------------------------------------------
# Chat Schemas
# -----------------------------------------------------------------------------


class CreateChatRequest(BaseModel):
    """Schema for POST /api/chats."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    is_public: bool = False
    image_url: str = ""
    background_url: str = ""


class ChatPictureRequest(BaseModel):
    """Schema for POST /api/chats/<chat_id>/picture."""

    image: ImageUpload
    target: Literal["image", "background"] = "image"


class SendMessageRequest(BaseModel):
    """Schema for POST /api/chats/<chat_id>/messages."""

    text: str = Field(..., min_length=1, max_length=4000)
    reply_to: str | None = None


class InviteRequest(BaseModel):
    """Schema for POST /api/chats/<chat_id>/invites."""

    user_id: str = Field(..., min_length=1)


# -----------------------------------------------------------------------------
# Economy Schemas
# -----------------------------------------------------------------------------


class AmountRequest(BaseModel):
    """Schema for POST /api/wallet/deposit."""

    amount: int = Field(..., gt=0)


class TransferRequest(BaseModel):
    """Schema for POST /api/wallet/transfer."""

    to_user_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)


class AdjustStatsRequest(BaseModel):
    """Schema for POST /api/stats/adjust. Deltas per stat name."""

    changes: dict[str, int] = Field(..., min_length=1)

    @field_validator("changes")
    @classmethod
    def validate_stat_names(cls, v: dict[str, int]) -> dict[str, int]:
        unknown = set(v) - set(Config.STATS_DEFAULTS)
        if unknown:
            raise ValueError(f"Unknown stats: {', '.join(sorted(unknown))}")
        return v
