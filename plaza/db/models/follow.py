"""Follow edge database operations mixin.

An edge "follow:{follower}:{followee}" exists exactly while the follower
follows the followee. Who someone follows is a prefix scan; who follows them
needs a scan of all edges.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from plaza.db.keys import FOLLOW_PREFIX, follow_key
from plaza.db.models.base import utcnow
from plaza.db.models.documents import Follow
from plaza.db.models.notification import FOLLOW_MESSAGE
from plaza.exceptions import ValidationError
from plaza.utils.logging import get_logger

if TYPE_CHECKING:
    from plaza.db.document_store import DocumentStore
    from plaza.db.models.documents import Notification, NotificationType

logger = get_logger(__name__)


@dataclass
class FollowStats:
    followers: list[Follow] = field(default_factory=list)
    following: list[Follow] = field(default_factory=list)

    @property
    def followers_count(self) -> int:
        return len(self.followers)

    @property
    def following_count(self) -> int:
        return len(self.following)


class FollowMixin:
    """Mixin providing follow/unfollow operations."""

    _store: DocumentStore

    def toggle_edge(self, key: str, make_document: Callable[[], dict[str, Any]]) -> bool:
        """Edge toggle (defined in ToggleMixin)."""
        raise NotImplementedError

    def notify(
        self,
        recipient_id: str,
        notification_type: NotificationType,
        actor_id: str,
        now: datetime | None = None,
        **references: Any,
    ) -> Notification | None:
        """Notification fan-out (defined in NotificationMixin)."""
        raise NotImplementedError

    def toggle_follow(self, follower_id: str, target_id: str, now: datetime | None = None) -> bool:
        """Follow ``target_id`` if not following yet, unfollow otherwise.

        Returns whether the follower follows the target afterwards. The target
        is notified on follow. Raises ValidationError for self-follows.
        """
        if follower_id == target_id:
            raise ValidationError("Cannot follow yourself", {"target_user_id": target_id})
        now = now or utcnow()

        def make_document() -> dict[str, Any]:
            edge = Follow(follower_id=follower_id, following_id=target_id, created_at=now)
            return edge.to_document()

        is_following = self.toggle_edge(follow_key(follower_id, target_id), make_document)
        if is_following:
            self.notify(target_id, "follow", follower_id, now, message=FOLLOW_MESSAGE)
        logger.info(
            "Follow toggled",
            extra={
                "follower_id": follower_id,
                "target_id": target_id,
                "is_following": is_following,
            },
        )
        return is_following

    def is_following(self, follower_id: str, target_id: str) -> bool:
        return self._store.get(follow_key(follower_id, target_id)) is not None

    def follow_stats(self, user_id: str) -> FollowStats:
        stats = FollowStats()
        for found in self._store.iter_prefix(FOLLOW_PREFIX):
            edge = Follow.model_validate(found.document)
            if edge.following_id == user_id:
                stats.followers.append(edge)
            if edge.follower_id == user_id:
                stats.following.append(edge)
        return stats
