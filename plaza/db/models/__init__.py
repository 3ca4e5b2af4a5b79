"""Database models package.

This package provides the Database class and the document schemas.
The Database class is composed of mixins for different entity operations,
all sharing one DocumentStore.

Usage:
    from plaza.db.models import Database, Post, db

    # Use the global instance
    post = db.get_post("post-123")

    # Or create your own instance
    custom_db = Database(custom_path)
"""

from pathlib import Path

from plaza.db.models.base import DatabaseBase, utcnow
from plaza.db.models.chat import ChatMixin, MembershipChange, MembershipOp
from plaza.db.models.documents import (
    DOCUMENT_MODELS,
    Chat,
    CommentNode,
    Follow,
    Invite,
    Message,
    Notification,
    PlayerStats,
    Post,
    Transaction,
    UsernameClaim,
    UserProfile,
    validate_document,
)
from plaza.db.models.economy import EconomyMixin
from plaza.db.models.follow import FollowMixin, FollowStats
from plaza.db.models.invite import InviteMixin
from plaza.db.models.notification import NotificationMixin
from plaza.db.models.post import PostMixin
from plaza.db.models.toggle import ToggleMixin, ToggleResult
from plaza.db.models.user import UserMixin, normalize_username


# Mixins that provide shared building blocks (toggles, notifications) come
# before the mixins that call them, so their implementations win in the MRO.
class Database(
    DatabaseBase,
    ToggleMixin,
    NotificationMixin,
    UserMixin,
    PostMixin,
    FollowMixin,
    ChatMixin,
    InviteMixin,
    EconomyMixin,
):
    """Main database class combining all mixins.

    Provides all document operations through a unified interface.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        """Initialize the database.

        Args:
            db_path: Optional path to the database file.
                    Defaults to Config.DATABASE_PATH.
        """
        super().__init__(db_path)


# Global database instance
db = Database()

# Re-export all public symbols
__all__ = [
    # Database class and instance
    "Database",
    "db",
    "utcnow",
    # Document schemas
    "DOCUMENT_MODELS",
    "Chat",
    "CommentNode",
    "Follow",
    "Invite",
    "Message",
    "Notification",
    "PlayerStats",
    "Post",
    "Transaction",
    "UsernameClaim",
    "UserProfile",
    "validate_document",
    # Operation results
    "FollowStats",
    "MembershipChange",
    "MembershipOp",
    "ToggleResult",
    "normalize_username",
]
