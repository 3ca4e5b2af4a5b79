"""Unit tests for chats, membership and messages."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from plaza.config import Config
from plaza.db.blob_store import BlobStore
from plaza.db.models import Database
from plaza.exceptions import ForbiddenError, InternalError, NotFoundError, ValidationError

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def users(make_user) -> None:
    make_user("alice-id", "alice")
    make_user("bob-id", "bob")
    make_user("carol-id", "carol")


def system_texts(db: Database, chat_id: str) -> list[str]:
    return [m.text for m in db.list_messages(chat_id) if m.is_system_message]


class TestCreateChat:
    def test_creator_is_only_member(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Lounge", "Hang out", now=T0)

        stored = test_database.require_chat(chat.chat_id)
        assert stored.members == ["alice-id"]
        assert stored.created_by == "alice-id"
        assert stored.is_public is False

    def test_writes_created_system_message(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Lounge", "Hang out", now=T0)

        messages = test_database.list_messages(chat.chat_id)
        assert len(messages) == 1
        assert messages[0].is_system_message
        assert messages[0].user_id == Config.SYSTEM_SENDER_ID
        assert messages[0].text == "alice criou este chat"

    @pytest.mark.parametrize(("name", "description"), [("", "desc"), ("Name", "  ")])
    def test_name_and_description_required(
        self, test_database: Database, users, name: str, description: str
    ) -> None:
        with pytest.raises(ValidationError):
            test_database.create_chat("alice-id", name, description)
        assert test_database.list_chats() == []

    def test_list_visibility(self, test_database: Database, users) -> None:
        public = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        private = test_database.create_chat(
            "alice-id", "Priv", "d", now=T0 + timedelta(minutes=1)
        )

        assert [c.chat_id for c in test_database.list_chats("alice-id")] == [
            private.chat_id,
            public.chat_id,
        ]
        assert [c.chat_id for c in test_database.list_chats("bob-id")] == [public.chat_id]


class TestMembership:
    """Join/leave paired with exactly one system message."""

    def test_join_writes_one_system_message(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Lounge", "d", now=T0)

        change = test_database.join_chat(chat.chat_id, "bob-id")

        assert change.changed is True
        assert change.message is not None
        assert change.message.text == "bob entrou no chat"
        assert test_database.require_chat(chat.chat_id).members == ["alice-id", "bob-id"]
        assert system_texts(test_database, chat.chat_id).count("bob entrou no chat") == 1

    def test_second_join_is_noop(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Lounge", "d", now=T0)
        test_database.join_chat(chat.chat_id, "bob-id")
        version = test_database.store.get_versioned(f"chat:{chat.chat_id}").version

        change = test_database.join_chat(chat.chat_id, "bob-id")

        assert change.changed is False
        assert change.message is None
        assert test_database.store.get_versioned(f"chat:{chat.chat_id}").version == version
        assert len(system_texts(test_database, chat.chat_id)) == 2

    def test_leave_writes_one_system_message(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Lounge", "d", now=T0)
        test_database.join_chat(chat.chat_id, "bob-id")

        change = test_database.leave_chat(chat.chat_id, "bob-id")
        again = test_database.leave_chat(chat.chat_id, "bob-id")

        assert change.changed is True
        assert change.chat.members == ["alice-id"]
        assert again.changed is False
        assert system_texts(test_database, chat.chat_id)[-1] == "bob saiu do chat"
        assert len(system_texts(test_database, chat.chat_id)) == 3

    def test_private_chat_can_be_joined_without_invite(
        self, test_database: Database, users
    ) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        assert test_database.join_chat(chat.chat_id, "bob-id").changed

    def test_join_missing_chat(self, test_database: Database, users) -> None:
        with pytest.raises(NotFoundError):
            test_database.join_chat("missing", "bob-id")

    def test_members_never_duplicated_under_repeats(
        self, test_database: Database, users
    ) -> None:
        chat = test_database.create_chat("alice-id", "Lounge", "d", now=T0)
        for op in ["join", "join", "leave", "join", "join"]:
            test_database.change_membership(chat.chat_id, "bob-id", op)
        members = test_database.require_chat(chat.chat_id).members
        assert members == ["alice-id", "bob-id"]
        # created + join + leave + join
        assert len(system_texts(test_database, chat.chat_id)) == 4


class TestMessages:
    def test_member_sends_to_private_chat(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        message = test_database.send_message(
            chat.chat_id, "alice-id", "hello", now=T0 + timedelta(seconds=1)
        )
        assert message.username == "alice"
        assert message.viewed_by == ["alice-id"]
        assert message.is_system_message is False

    def test_non_member_rejected_from_private_chat(
        self, test_database: Database, users
    ) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        with pytest.raises(ForbiddenError):
            test_database.send_message(chat.chat_id, "bob-id", "hi")
        with pytest.raises(ForbiddenError):
            test_database.list_messages(chat.chat_id, "bob-id")

    def test_anyone_can_post_in_public_chat(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        test_database.send_message(chat.chat_id, "bob-id", "hi")
        assert len(test_database.list_messages(chat.chat_id, "bob-id")) == 2

    def test_blank_text_rejected(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        with pytest.raises(ValidationError):
            test_database.send_message(chat.chat_id, "alice-id", "   ")

    def test_reply_copies_original(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        original = test_database.send_message(chat.chat_id, "alice-id", "question?")

        reply = test_database.send_message(
            chat.chat_id, "bob-id", "answer", reply_to=original.message_id
        )

        assert reply.reply_to == original.message_id
        assert reply.reply_to_text == "question?"
        assert reply.reply_to_username == "alice"

    def test_reply_to_missing_message(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        with pytest.raises(NotFoundError):
            test_database.send_message(chat.chat_id, "bob-id", "hi", reply_to="nope")

    def test_list_oldest_first(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        for i in range(3):
            test_database.send_message(
                chat.chat_id, "alice-id", f"m{i}", now=T0 + timedelta(minutes=i + 1)
            )
        texts = [m.text for m in test_database.list_messages(chat.chat_id)]
        assert texts == ["alice criou este chat", "m0", "m1", "m2"]

    def test_view_is_idempotent(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        message = test_database.send_message(chat.chat_id, "alice-id", "hi")

        assert test_database.view_message(chat.chat_id, message.message_id, "bob-id") is True
        assert test_database.view_message(chat.chat_id, message.message_id, "bob-id") is False
        assert test_database.view_message(chat.chat_id, message.message_id, "alice-id") is False

        stored = test_database.list_messages(chat.chat_id)[-1]
        assert stored.viewed_by == ["alice-id", "bob-id"]

    def test_view_missing_message(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        with pytest.raises(NotFoundError):
            test_database.view_message(chat.chat_id, "nope", "bob-id")

    def test_private_chat_readable_by_members_only(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        message = test_database.send_message(chat.chat_id, "alice-id", "hi")

        assert test_database.require_chat(chat.chat_id, "alice-id").chat_id == chat.chat_id
        with pytest.raises(ForbiddenError):
            test_database.require_chat(chat.chat_id, "bob-id")
        with pytest.raises(ForbiddenError):
            test_database.view_message(chat.chat_id, message.message_id, "bob-id")


class TestDeleteChat:
    def test_cascades_to_messages_and_pictures(
        self, test_database: Database, test_blob_store: BlobStore, users
    ) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        other = test_database.create_chat("alice-id", "Other", "d", now=T0)
        test_database.send_message(chat.chat_id, "alice-id", "one")
        test_database.send_message(chat.chat_id, "alice-id", "two")
        updated = test_database.set_chat_picture(chat.chat_id, "alice-id", b"img", "image/png")
        blob_key = updated.image_url.removeprefix(f"{Config.BLOB_PUBLIC_URL_PREFIX}/")
        assert test_blob_store.exists(blob_key)

        deleted = test_database.delete_chat(chat.chat_id, "alice-id")

        assert deleted == 3
        assert test_database.get_chat(chat.chat_id) is None
        assert test_database.list_messages(chat.chat_id) == []
        assert not test_blob_store.exists(blob_key)
        assert len(test_database.list_messages(other.chat_id)) == 1

    def test_only_creator_can_delete(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        test_database.join_chat(chat.chat_id, "bob-id")
        with pytest.raises(ForbiddenError):
            test_database.delete_chat(chat.chat_id, "bob-id")
        assert test_database.get_chat(chat.chat_id) is not None

    def test_delete_missing_chat(self, test_database: Database, users) -> None:
        with pytest.raises(NotFoundError):
            test_database.delete_chat("missing", "alice-id")

    def test_failed_batch_leaves_everything(
        self, test_database: Database, test_blob_store: BlobStore, users
    ) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        test_database.send_message(chat.chat_id, "alice-id", "one")
        updated = test_database.set_chat_picture(chat.chat_id, "alice-id", b"img", "image/png")
        blob_key = updated.image_url.removeprefix(f"{Config.BLOB_PUBLIC_URL_PREFIX}/")

        with (
            patch.object(
                test_database.store, "write_batch", side_effect=InternalError("Storage failure")
            ),
            pytest.raises(InternalError),
        ):
            test_database.delete_chat(chat.chat_id, "alice-id")

        assert test_database.get_chat(chat.chat_id) is not None
        assert len(test_database.list_messages(chat.chat_id)) == 2
        assert test_blob_store.exists(blob_key)

    def test_retries_when_chat_changes_underneath(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        real_write_batch = test_database.store.write_batch
        joined: list[bool] = []

        def join_first(ops):
            if not joined:
                joined.append(True)
                test_database.join_chat(chat.chat_id, "bob-id")
            return real_write_batch(ops)

        with patch.object(test_database.store, "write_batch", side_effect=join_first):
            deleted = test_database.delete_chat(chat.chat_id, "alice-id")

        # The join's system message was picked up by the second attempt
        assert deleted == 2
        assert test_database.get_chat(chat.chat_id) is None
        assert test_database.store.scan_by_prefix(f"message:{chat.chat_id}:") == []


class TestChatPicture:
    def test_background_target(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Priv", "d", now=T0)
        updated = test_database.set_chat_picture(
            chat.chat_id, "alice-id", b"img", "image/png", field="background_url"
        )
        assert updated.background_url.startswith(Config.BLOB_PUBLIC_URL_PREFIX)
        assert updated.image_url == ""

    def test_non_creator_forbidden(self, test_database: Database, users) -> None:
        chat = test_database.create_chat("alice-id", "Pub", "d", is_public=True, now=T0)
        with pytest.raises(ForbiddenError):
            test_database.set_chat_picture(chat.chat_id, "bob-id", b"img", "image/png")
