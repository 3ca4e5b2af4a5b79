"""Notification database operations mixin.

Notifications are keyed by recipient ("notification:{recipient}:{id}") so a
user's inbox is one prefix scan and ownership checks are a key lookup.
Fan-out is fire-and-forget: every qualifying event writes a new record, and
undoing the event (unlike, unfollow) does not retract it.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from plaza.db.keys import new_time_ordered_id, notification_key, notification_prefix
from plaza.db.models.base import utcnow
from plaza.db.models.documents import Notification, NotificationType
from plaza.exceptions import NotFoundError
from plaza.utils.logging import get_logger

if TYPE_CHECKING:
    from plaza.db.document_store import DocumentStore

logger = get_logger(__name__)

# Human-readable classifier text shown next to the actor's name
LIKE_MESSAGE = "curtiu sua postagem"
COMMENT_MESSAGE = "comentou na sua postagem"
FOLLOW_MESSAGE = "começou a seguir você"


class NotificationMixin:
    """Mixin providing notification fan-out and inbox operations."""

    _store: DocumentStore

    def _identity(self, user_id: str) -> tuple[str, str | None]:
        """Display identity lookup (defined in base class)."""
        raise NotImplementedError

    def build_notification(
        self,
        recipient_id: str,
        notification_type: NotificationType,
        actor_id: str,
        now: datetime | None = None,
        **references: Any,
    ) -> tuple[str, Notification]:
        """Build (key, notification) without writing it, for use inside a batch."""
        now = now or utcnow()
        username, avatar_url = self._identity(actor_id)
        notification_id = new_time_ordered_id(now)
        notification = Notification(
            notification_id=notification_id,
            user_id=recipient_id,
            type=notification_type,
            from_user_id=actor_id,
            from_username=username,
            from_avatar_url=avatar_url,
            created_at=now,
            **references,
        )
        return notification_key(recipient_id, notification_id), notification

    def notify(
        self,
        recipient_id: str,
        notification_type: NotificationType,
        actor_id: str,
        now: datetime | None = None,
        **references: Any,
    ) -> Notification | None:
        """Record a notification for ``recipient_id`` about ``actor_id``'s action.

        Nothing is written when users act on their own content.

        Args:
            recipient_id: User who receives the notification
            notification_type: like, comment, follow or chat_invite
            actor_id: User who triggered it
            now: Creation time (defaults to the current time)
            **references: Optional post_id, chat_id, chat_name, invite_id, message

        Returns:
            The stored notification, or None if suppressed
        """
        if actor_id == recipient_id:
            return None
        key, notification = self.build_notification(
            recipient_id, notification_type, actor_id, now, **references
        )
        self._store.set(key, notification.to_document())
        logger.debug(
            "Notification created",
            extra={"recipient_id": recipient_id, "type": notification_type, "actor_id": actor_id},
        )
        return notification

    def list_notifications(self, user_id: str) -> list[Notification]:
        """Return the user's notifications, newest first."""
        notifications = [
            Notification.model_validate(doc)
            for doc in self._store.scan_by_prefix(notification_prefix(user_id))
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications

    def count_unread_notifications(self, user_id: str) -> int:
        return sum(1 for n in self.list_notifications(user_id) if not n.is_read)

    def mark_notification_read(self, user_id: str, notification_id: str) -> Notification:
        """Mark one of the user's notifications as read.

        Raises NotFoundError if it does not exist or belongs to someone else.
        """

        def mutate(document: dict[str, Any]) -> dict[str, Any] | None:
            if document.get("is_read"):
                return None
            document["is_read"] = True
            return document

        updated = self._store.update(
            notification_key(user_id, notification_id), mutate, "Notification"
        )
        return Notification.model_validate(updated.document)

    def mark_all_notifications_read(self, user_id: str) -> int:
        """Mark every unread notification of the user as read. Returns the count changed."""
        changed = 0
        for found in self._store.iter_prefix(notification_prefix(user_id)):
            if found.document.get("is_read"):
                continue
            try:
                self.mark_notification_read(user_id, found.document["notification_id"])
            except NotFoundError:
                # Deleted between the scan and the write
                continue
            changed += 1
        logger.debug("Notifications marked read", extra={"user_id": user_id, "count": changed})
        return changed
