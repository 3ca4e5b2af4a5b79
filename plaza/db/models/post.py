"""Post database operations mixin.

Contains all methods for Post entity management including:
- Post creation, retrieval and listing
- Likes (toggle)
- Threaded comments (arena stored inside the post)
- Featured-post rotation with lazy expiry

At most one post is featured at a time. Featuring a post clears the flag on
every other featured post in the same atomic batch as setting it on the
target; each write is conditioned on the version that was read, and the whole
rotation is re-run if any of them changed in between. Featured status lapses
after Config.FEATURE_WINDOW_DAYS; the lapse is applied lazily whenever posts
are listed.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from plaza.config import Config
from plaza.db.comment_tree import CommentTree
from plaza.db.document_store import WriteOp
from plaza.db.keys import POST_PREFIX, new_id, post_key
from plaza.db.models.base import utcnow
from plaza.db.models.documents import CommentNode, Post
from plaza.db.models.notification import COMMENT_MESSAGE, LIKE_MESSAGE
from plaza.db.models.toggle import ToggleResult
from plaza.exceptions import ForbiddenError, NotFoundError, ValidationError, VersionConflict
from plaza.utils.logging import get_logger

if TYPE_CHECKING:
    from plaza.db.document_store import DocumentStore
    from plaza.db.models.documents import Notification, NotificationType

logger = get_logger(__name__)


class PostMixin:
    """Mixin providing Post-related database operations."""

    _store: DocumentStore

    def _identity(self, user_id: str) -> tuple[str, str | None]:
        """Display identity lookup (defined in base class)."""
        raise NotImplementedError

    def toggle_member(
        self, key: str, field: str, member_id: str, resource: str = "Document"
    ) -> ToggleResult:
        """Set-membership toggle (defined in ToggleMixin)."""
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

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def create_post(
        self,
        user_id: str,
        title: str = "",
        text: str = "",
        image_url: str | None = None,
        image_path: str | None = None,
        featured: bool = False,
        post_id: str | None = None,
        now: datetime | None = None,
    ) -> Post:
        """Create a post, optionally featuring it right away.

        A post created as featured displaces the current featured post in the
        same batch that creates it.
        """
        now = now or utcnow()
        username, avatar_url = self._identity(user_id)
        post = Post(
            post_id=post_id or new_id(),
            user_id=user_id,
            username=username,
            avatar_url=avatar_url,
            title=title,
            text=text,
            image_url=image_url,
            image_path=image_path,
            featured=featured,
            featured_at=now if featured else None,
            created_at=now,
        )
        key = post_key(post.post_id)

        def attempt() -> None:
            ops = self._unfeature_ops(exclude_key=key) if featured else []
            ops.append(WriteOp.put(key, post.to_document(), expected_version=0))
            self._store.write_batch(ops)

        self._store.run_optimistic("create_post", attempt)
        logger.info(
            "Post created",
            extra={"post_id": post.post_id, "user_id": user_id, "featured": featured},
        )
        return post

    def get_post(self, post_id: str) -> Post | None:
        document = self._store.get(post_key(post_id))
        return Post.model_validate(document) if document else None

    def require_post(self, post_id: str) -> Post:
        post = self.get_post(post_id)
        if post is None:
            raise NotFoundError("Post", {"post_id": post_id})
        return post

    def list_posts(
        self,
        owner_id: str | None = None,
        featured_only: bool = False,
        now: datetime | None = None,
    ) -> list[Post]:
        """List posts newest first, after expiring stale featured flags.

        Args:
            owner_id: Only posts by this user
            featured_only: Only the currently featured post(s)
            now: Reference time for the expiry sweep
        """
        self.expire_featured_posts(now)

        posts = [
            Post.model_validate(found.document) for found in self._store.iter_prefix(POST_PREFIX)
        ]
        if owner_id is not None:
            posts = [p for p in posts if p.user_id == owner_id]
        if featured_only:
            posts = [p for p in posts if p.featured]
        posts.sort(key=lambda p: p.created_at, reverse=True)
        return posts

    # ------------------------------------------------------------------
    # Likes
    # ------------------------------------------------------------------

    def like_post(self, post_id: str, user_id: str, now: datetime | None = None) -> ToggleResult:
        """Toggle the user's like on a post.

        The post owner is notified on every like by someone else (never on
        unlike).
        """
        result = self.toggle_member(post_key(post_id), "likes", user_id, "Post")
        if result.present:
            post = self.get_post(post_id)
            if post is not None:
                self.notify(
                    post.user_id, "like", user_id, now, post_id=post_id, message=LIKE_MESSAGE
                )
        logger.info(
            "Post like toggled",
            extra={"post_id": post_id, "user_id": user_id, "has_liked": result.present},
        )
        return result

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def add_comment(
        self,
        post_id: str,
        user_id: str,
        text: str,
        parent_comment_id: str | None = None,
        now: datetime | None = None,
    ) -> CommentNode:
        """Add a comment or a reply to an existing comment.

        Raises NotFoundError for a missing post or parent comment, and
        ValidationError for empty text or when the thread limits are reached.
        Nothing is written on error.
        """
        text = text.strip()
        if not text:
            raise ValidationError("Comment text is required", {"field": "text"})
        if len(text) > Config.COMMENT_MAX_LENGTH:
            raise ValidationError(
                f"Comment must be at most {Config.COMMENT_MAX_LENGTH} characters",
                {"field": "text"},
            )

        now = now or utcnow()
        username, avatar_url = self._identity(user_id)
        comment_id = new_id()
        inserted: CommentNode | None = None
        owner_id = ""

        def mutate(document: dict[str, Any]) -> dict[str, Any]:
            nonlocal inserted, owner_id
            post = Post.model_validate(document)
            node = CommentNode(
                comment_id=comment_id,
                user_id=user_id,
                username=username,
                avatar_url=avatar_url,
                text=text,
                parent_comment_id=parent_comment_id,
                created_at=now,
            )
            inserted = CommentTree.of(post).insert(node)
            owner_id = post.user_id
            return post.to_document()

        self._store.update(post_key(post_id), mutate, "Post")
        assert inserted is not None

        self.notify(owner_id, "comment", user_id, now, post_id=post_id, message=COMMENT_MESSAGE)
        logger.info(
            "Comment added",
            extra={
                "post_id": post_id,
                "comment_id": comment_id,
                "parent_comment_id": parent_comment_id,
                "depth": inserted.depth,
            },
        )
        return inserted

    # ------------------------------------------------------------------
    # Featured rotation
    # ------------------------------------------------------------------

    def _unfeature_ops(self, exclude_key: str) -> list[WriteOp]:
        """Conditioned writes clearing the flag on every featured post except one."""
        ops: list[WriteOp] = []
        for found in self._store.iter_prefix(POST_PREFIX):
            if found.key == exclude_key or not found.document.get("featured"):
                continue
            cleared = dict(found.document, featured=False, featured_at=None)
            ops.append(WriteOp.put(found.key, cleared, expected_version=found.version))
        return ops

    def set_featured(
        self,
        post_id: str,
        featured: bool,
        user_id: str,
        now: datetime | None = None,
    ) -> Post:
        """Feature or unfeature a post. Only its owner may do this.

        Featuring rotates: every other featured post is cleared in the same
        batch. Raises NotFoundError or ForbiddenError.
        """
        now = now or utcnow()
        key = post_key(post_id)

        def attempt() -> Post:
            current = self._store.get_versioned(key)
            if current is None:
                raise NotFoundError("Post", {"post_id": post_id})
            post = Post.model_validate(current.document)
            if post.user_id != user_id:
                raise ForbiddenError(
                    "Only the post owner can feature their post", {"post_id": post_id}
                )

            ops = self._unfeature_ops(exclude_key=key) if featured else []
            post.featured = featured
            post.featured_at = now if featured else None
            ops.append(WriteOp.put(key, post.to_document(), expected_version=current.version))
            self._store.write_batch(ops)
            if len(ops) > 1:
                logger.debug(
                    "Featured rotation displaced posts",
                    extra={"post_id": post_id, "displaced": len(ops) - 1},
                )
            return post

        post = self._store.run_optimistic("set_featured", attempt)
        logger.info("Post featured status set", extra={"post_id": post_id, "featured": featured})
        return post

    def toggle_featured(self, post_id: str, user_id: str, now: datetime | None = None) -> Post:
        """Flip a post's featured status."""
        post = self.require_post(post_id)
        return self.set_featured(post_id, not post.featured, user_id, now)

    def expire_featured_posts(self, now: datetime | None = None) -> int:
        """Clear featured status on posts featured for the whole window.

        Each clear is conditioned on the version scanned; a post that changed
        in the meantime is skipped because its writer already decided its
        state. Returns the number of posts expired.
        """
        now = now or utcnow()
        cutoff = now - timedelta(days=Config.FEATURE_WINDOW_DAYS)
        expired = 0
        for found in self._store.iter_prefix(POST_PREFIX):
            if not found.document.get("featured"):
                continue
            post = Post.model_validate(found.document)
            if post.featured_at is not None and post.featured_at > cutoff:
                continue
            post.featured = False
            post.featured_at = None
            try:
                self._store.compare_and_set(found.key, post.to_document(), found.version)
            except VersionConflict:
                logger.debug(
                    "Skipped expiring a concurrently updated post", extra={"key": found.key}
                )
                continue
            expired += 1

        if expired:
            logger.info("Expired featured posts", extra={"count": expired})
        return expired
