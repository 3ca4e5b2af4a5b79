"""Chat and message database operations mixin.

Contains all methods for Chat and Message management including:
- Chat creation, listing, deletion (cascading to messages)
- Membership changes paired with system messages
- Sending, listing and marking messages as viewed

Every change to a chat's member set is committed in the same batch as
exactly one system message announcing it, with the chat write conditioned
on the version that was read. A join by a member or a leave by a non-member
changes nothing and writes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Literal

from plaza.config import Config
from plaza.db.blob_store import get_blob_store, make_chat_image_key
from plaza.db.document_store import WriteOp
from plaza.db.keys import (
    CHAT_PREFIX,
    chat_key,
    message_key,
    message_prefix,
    new_id,
    new_time_ordered_id,
)
from plaza.db.models.base import utcnow
from plaza.db.models.documents import Chat, Message
from plaza.exceptions import ForbiddenError, NotFoundError, ValidationError
from plaza.utils.logging import get_logger

if TYPE_CHECKING:
    from plaza.db.document_store import DocumentStore, VersionedDocument

logger = get_logger(__name__)

MembershipOp = Literal["join", "leave"]

CREATED_TEXT = "{username} criou este chat"
JOINED_TEXT = "{username} entrou no chat"
LEFT_TEXT = "{username} saiu do chat"


@dataclass(frozen=True)
class MembershipChange:
    """Outcome of a membership edit. ``message`` is None when nothing changed."""

    chat: Chat
    changed: bool
    message: Message | None = None


class ChatMixin:
    """Mixin providing Chat and Message operations."""

    _store: DocumentStore

    def _identity(self, user_id: str) -> tuple[str, str | None]:
        """Display identity lookup (defined in base class)."""
        raise NotImplementedError

    def ensure_member(
        self, key: str, field: str, member_id: str, resource: str = "Document"
    ) -> bool:
        """Idempotent set insert (defined in ToggleMixin)."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def _system_message(self, chat_id: str, text: str, now: datetime) -> tuple[str, Message]:
        message_id = new_time_ordered_id(now)
        message = Message(
            message_id=message_id,
            chat_id=chat_id,
            user_id=Config.SYSTEM_SENDER_ID,
            username=Config.SYSTEM_SENDER_NAME,
            text=text,
            is_system_message=True,
            created_at=now,
        )
        return message_key(chat_id, message_id), message

    def create_chat(
        self,
        creator_id: str,
        name: str,
        description: str,
        is_public: bool = False,
        image_url: str = "",
        background_url: str = "",
        now: datetime | None = None,
    ) -> Chat:
        """Create a chat with its creator as the only member.

        The chat and its "created" system message are written together.
        """
        name = name.strip()
        description = description.strip()
        if not name or not description:
            raise ValidationError("Name and description are required")

        now = now or utcnow()
        chat = Chat(
            chat_id=new_id(),
            name=name,
            description=description,
            image_url=image_url,
            background_url=background_url,
            created_by=creator_id,
            is_public=is_public,
            members=[creator_id],
            created_at=now,
        )
        username, _ = self._identity(creator_id)
        system_key, message = self._system_message(
            chat.chat_id, CREATED_TEXT.format(username=username), now
        )
        self._store.write_batch(
            [
                WriteOp.put(chat_key(chat.chat_id), chat.to_document(), expected_version=0),
                WriteOp.put(system_key, message.to_document(), expected_version=0),
            ]
        )
        logger.info(
            "Chat created",
            extra={"chat_id": chat.chat_id, "creator_id": creator_id, "is_public": is_public},
        )
        return chat

    def get_chat(self, chat_id: str) -> Chat | None:
        document = self._store.get(chat_key(chat_id))
        return Chat.model_validate(document) if document else None

    def require_chat(self, chat_id: str, user_id: str | None = None) -> Chat:
        """Load a chat, raising NotFoundError if it is missing.

        With ``user_id``, private chats are only returned to their members.
        """
        chat = self.get_chat(chat_id)
        if chat is None:
            raise NotFoundError("Chat", {"chat_id": chat_id})
        if user_id is not None:
            self._check_can_read(chat, user_id)
        return chat

    def list_chats(self, user_id: str | None = None) -> list[Chat]:
        """Chats visible to ``user_id`` (public or joined), newest first.

        With no user every chat is returned.
        """
        chats = [
            Chat.model_validate(found.document) for found in self._store.iter_prefix(CHAT_PREFIX)
        ]
        if user_id is not None:
            chats = [c for c in chats if c.is_public or user_id in c.members]
        chats.sort(key=lambda c: c.created_at, reverse=True)
        return chats

    def delete_chat(self, chat_id: str, user_id: str | None = None) -> int:
        """Delete a chat and all of its messages and pictures.

        When ``user_id`` is given only the chat's creator may delete it.
        The chat and its messages go in one batch, with the chat write
        conditioned on the version read; pictures are removed once that
        batch has committed.

        Returns:
            Number of messages deleted
        """

        def attempt() -> int:
            current = self._store.get_versioned(chat_key(chat_id))
            if current is None:
                raise NotFoundError("Chat", {"chat_id": chat_id})
            chat = Chat.model_validate(current.document)
            if user_id is not None and chat.created_by != user_id:
                raise ForbiddenError("Only the chat creator can delete it", {"chat_id": chat_id})

            message_keys = [found.key for found in self._store.iter_prefix(message_prefix(chat_id))]
            self._store.write_batch(
                [
                    WriteOp.delete(current.key, current.version),
                    *(WriteOp.delete(key) for key in message_keys),
                ]
            )
            return len(message_keys)

        deleted = self._store.run_optimistic("delete_chat", attempt)
        get_blob_store().delete_by_prefix(f"chats/{chat_id}/")

        logger.info("Chat deleted", extra={"chat_id": chat_id, "messages_deleted": deleted})
        return deleted

    def set_chat_picture(
        self,
        chat_id: str,
        user_id: str,
        data: bytes,
        mime_type: str,
        field: Literal["image_url", "background_url"] = "image_url",
    ) -> Chat:
        """Upload a chat image or background. Creator only."""
        chat = self.require_chat(chat_id)
        if chat.created_by != user_id:
            raise ForbiddenError(
                "Only the chat creator can change its pictures", {"chat_id": chat_id}
            )
        url = get_blob_store().save(make_chat_image_key(chat_id), data, mime_type)

        def mutate(document: dict) -> dict:
            document[field] = url
            return document

        updated = self._store.update(chat_key(chat_id), mutate, "Chat")
        return Chat.model_validate(updated.document)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def membership_ops(
        self,
        current: VersionedDocument,
        user_id: str,
        op: MembershipOp,
        now: datetime,
    ) -> tuple[list[WriteOp], Chat, Message | None]:
        """Writes applying a membership edit to a chat read at ``current``.

        Returns no ops (and no message) if the user is already in the desired
        state.
        """
        chat = Chat.model_validate(current.document)
        is_member = user_id in chat.members
        if (op == "join" and is_member) or (op == "leave" and not is_member):
            return [], chat, None

        if op == "join":
            chat.members = [*chat.members, user_id]
            template = JOINED_TEXT
        else:
            chat.members = [m for m in chat.members if m != user_id]
            template = LEFT_TEXT

        username, _ = self._identity(user_id)
        key, message = self._system_message(chat.chat_id, template.format(username=username), now)
        ops = [
            WriteOp.put(current.key, chat.to_document(), expected_version=current.version),
            WriteOp.put(key, message.to_document(), expected_version=0),
        ]
        return ops, chat, message

    def change_membership(
        self,
        chat_id: str,
        user_id: str,
        op: MembershipOp,
        now: datetime | None = None,
    ) -> MembershipChange:
        """Join or leave a chat, writing one system message if membership changed."""
        now = now or utcnow()

        def attempt() -> MembershipChange:
            current = self._store.get_versioned(chat_key(chat_id))
            if current is None:
                raise NotFoundError("Chat", {"chat_id": chat_id})
            ops, chat, message = self.membership_ops(current, user_id, op, now)
            if not ops:
                return MembershipChange(chat=chat, changed=False)
            self._store.write_batch(ops)
            return MembershipChange(chat=chat, changed=True, message=message)

        change = self._store.run_optimistic(f"chat {op}", attempt)
        logger.info(
            "Chat membership edited",
            extra={"chat_id": chat_id, "user_id": user_id, "op": op, "changed": change.changed},
        )
        return change

    def join_chat(self, chat_id: str, user_id: str) -> MembershipChange:
        return self.change_membership(chat_id, user_id, "join")

    def leave_chat(self, chat_id: str, user_id: str) -> MembershipChange:
        return self.change_membership(chat_id, user_id, "leave")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _check_can_read(self, chat: Chat, user_id: str) -> None:
        if not chat.is_public and user_id not in chat.members:
            raise ForbiddenError("You are not a member of this chat", {"chat_id": chat.chat_id})

    def send_message(
        self,
        chat_id: str,
        user_id: str,
        text: str,
        reply_to: str | None = None,
        now: datetime | None = None,
    ) -> Message:
        """Post a message. Members only, unless the chat is public.

        ``reply_to`` is the id of a message in the same chat; its text and
        author are copied onto the reply.
        """
        if not text.strip():
            raise ValidationError("Message text is required", {"field": "text"})
        chat = self.require_chat(chat_id, user_id)

        reply_to_text = reply_to_username = None
        if reply_to is not None:
            original = self._store.get(message_key(chat_id, reply_to))
            if original is None:
                raise NotFoundError("Message", {"message_id": reply_to})
            reply_to_text = original["text"]
            reply_to_username = original["username"]

        now = now or utcnow()
        username, avatar_url = self._identity(user_id)
        message = Message(
            message_id=new_time_ordered_id(now),
            chat_id=chat_id,
            user_id=user_id,
            username=username,
            avatar_url=avatar_url,
            text=text,
            reply_to=reply_to,
            reply_to_text=reply_to_text,
            reply_to_username=reply_to_username,
            viewed_by=[user_id],
            created_at=now,
        )
        self._store.write_batch(
            [WriteOp.put(message_key(chat_id, message.message_id), message.to_document(), 0)]
        )
        logger.debug("Message sent", extra={"chat_id": chat_id, "message_id": message.message_id})
        return message

    def list_messages(self, chat_id: str, user_id: str | None = None) -> list[Message]:
        """Messages of a chat, oldest first."""
        if user_id is not None:
            self.require_chat(chat_id, user_id)
        messages = [
            Message.model_validate(found.document)
            for found in self._store.iter_prefix(message_prefix(chat_id))
        ]
        messages.sort(key=lambda m: (m.created_at, m.message_id))
        return messages

    def view_message(self, chat_id: str, message_id: str, user_id: str) -> bool:
        """Record that ``user_id`` has seen a message. Returns True on first view."""
        self.require_chat(chat_id, user_id)
        return self.ensure_member(message_key(chat_id, message_id), "viewed_by", user_id, "Message")
