"""Chat invite database operations mixin.

An invite moves from pending to accepted or rejected exactly once. Accepting
commits the invite's status change, the recipient's chat membership and the
"joined" system message in a single batch, so a second accept finds the
invite already resolved and changes nothing.

The recipient id is taken as given and not checked against existing
profiles.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from plaza.db.document_store import WriteOp
from plaza.db.keys import INVITE_PREFIX, chat_key, invite_key, new_id
from plaza.db.models.base import utcnow
from plaza.db.models.documents import Invite, InviteStatus
from plaza.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from plaza.utils.logging import get_logger

if TYPE_CHECKING:
    from plaza.db.document_store import DocumentStore, VersionedDocument
    from plaza.db.models.chat import MembershipOp
    from plaza.db.models.documents import Chat, Message, Notification, NotificationType

logger = get_logger(__name__)


class InviteMixin:
    """Mixin providing chat invite operations."""

    _store: DocumentStore

    def _identity(self, user_id: str) -> tuple[str, str | None]:
        """Display identity lookup (defined in base class)."""
        raise NotImplementedError

    def require_chat(self, chat_id: str, user_id: str | None = None) -> Chat:
        """Chat lookup (defined in ChatMixin)."""
        raise NotImplementedError

    def membership_ops(
        self,
        current: VersionedDocument,
        user_id: str,
        op: MembershipOp,
        now: datetime,
    ) -> tuple[list[WriteOp], Chat, Message | None]:
        """Membership edit writes (defined in ChatMixin)."""
        raise NotImplementedError

    def build_notification(
        self,
        recipient_id: str,
        notification_type: NotificationType,
        actor_id: str,
        now: datetime | None = None,
        **references: Any,
    ) -> tuple[str, Notification]:
        """Notification builder (defined in NotificationMixin)."""
        raise NotImplementedError

    def send_invite(
        self,
        chat_id: str,
        from_user_id: str,
        to_user_id: str,
        now: datetime | None = None,
    ) -> Invite:
        """Invite ``to_user_id`` into a chat.

        The sender must be the chat's creator or a member, and the recipient
        neither the sender nor a current member. The pending invite and the
        recipient's ``chat_invite`` notification are written together.
        """
        chat = self.require_chat(chat_id)
        if chat.created_by != from_user_id and from_user_id not in chat.members:
            raise ForbiddenError("You must be a member to invite others", {"chat_id": chat_id})
        if to_user_id == from_user_id:
            raise ValidationError("Cannot invite yourself", {"field": "user_id"})
        if to_user_id in chat.members:
            raise ConflictError(
                "User is already a member of this chat",
                {"chat_id": chat_id, "user_id": to_user_id},
            )

        now = now or utcnow()
        username, _ = self._identity(from_user_id)
        invite = Invite(
            invite_id=new_id(),
            chat_id=chat_id,
            chat_name=chat.name,
            from_user_id=from_user_id,
            from_username=username,
            to_user_id=to_user_id,
            created_at=now,
        )
        ops = [WriteOp.put(invite_key(invite.invite_id), invite.to_document(), expected_version=0)]
        key, notification = self.build_notification(
            to_user_id,
            "chat_invite",
            from_user_id,
            now,
            chat_id=chat_id,
            chat_name=chat.name,
            invite_id=invite.invite_id,
        )
        ops.append(WriteOp.put(key, notification.to_document(), expected_version=0))
        self._store.write_batch(ops)

        logger.info(
            "Invite sent",
            extra={"invite_id": invite.invite_id, "chat_id": chat_id, "to_user_id": to_user_id},
        )
        return invite

    def get_invite(self, invite_id: str) -> Invite | None:
        document = self._store.get(invite_key(invite_id))
        return Invite.model_validate(document) if document else None

    def list_pending_invites(self, user_id: str) -> list[Invite]:
        """Pending invites addressed to the user, newest first."""
        invites = [
            Invite.model_validate(found.document)
            for found in self._store.iter_prefix(INVITE_PREFIX)
            if found.document.get("to_user_id") == user_id
            and found.document.get("status") == "pending"
        ]
        invites.sort(key=lambda i: i.created_at, reverse=True)
        return invites

    def _read_pending_invite(
        self, invite_id: str, user_id: str
    ) -> tuple[VersionedDocument, Invite]:
        current = self._store.get_versioned(invite_key(invite_id))
        # Foreign and already-resolved invites look the same as missing ones
        if current is None:
            raise NotFoundError("Invite", {"invite_id": invite_id})
        invite = Invite.model_validate(current.document)
        if invite.to_user_id != user_id or invite.status != "pending":
            raise NotFoundError("Invite", {"invite_id": invite_id})
        return current, invite

    def _resolve(self, invite: Invite, status: InviteStatus, now: datetime) -> Invite:
        return invite.model_copy(update={"status": status, "resolved_at": now})

    def accept_invite(self, invite_id: str, user_id: str, now: datetime | None = None) -> Invite:
        """Accept a pending invite and join its chat.

        Raises NotFoundError if the invite is missing, addressed to someone
        else or already resolved, or if the chat no longer exists.
        """
        now = now or utcnow()

        def attempt() -> Invite:
            current, invite = self._read_pending_invite(invite_id, user_id)
            chat_current = self._store.get_versioned(chat_key(invite.chat_id))
            if chat_current is None:
                raise NotFoundError("Chat", {"chat_id": invite.chat_id})

            ops, _, _ = self.membership_ops(chat_current, user_id, "join", now)
            accepted = self._resolve(invite, "accepted", now)
            ops.append(
                WriteOp.put(current.key, accepted.to_document(), expected_version=current.version)
            )
            self._store.write_batch(ops)
            return accepted

        invite = self._store.run_optimistic("accept_invite", attempt)
        logger.info("Invite accepted", extra={"invite_id": invite_id, "chat_id": invite.chat_id})
        return invite

    def reject_invite(self, invite_id: str, user_id: str, now: datetime | None = None) -> Invite:
        """Reject a pending invite. Same lookup rules as accept_invite."""
        now = now or utcnow()

        def attempt() -> Invite:
            current, invite = self._read_pending_invite(invite_id, user_id)
            rejected = self._resolve(invite, "rejected", now)
            self._store.compare_and_set(current.key, rejected.to_document(), current.version)
            return rejected

        invite = self._store.run_optimistic("reject_invite", attempt)
        logger.info("Invite rejected", extra={"invite_id": invite_id})
        return invite
