"""Unit tests for profiles and usernames."""

import threading
from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from plaza.config import Config
from plaza.db.blob_store import BlobStore
from plaza.db.keys import username_key
from plaza.db.models import Database, normalize_username
from plaza.exceptions import ConflictError, NotFoundError, ValidationError

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


class TestNormalizeUsername:
    def test_strips_whitespace(self) -> None:
        assert normalize_username("  alice ") == "alice"

    def test_too_short(self) -> None:
        with pytest.raises(ValidationError):
            normalize_username("ab")

    def test_too_long(self) -> None:
        with pytest.raises(ValidationError):
            normalize_username("x" * (Config.USERNAME_MAX_LENGTH + 1))


class TestSetUsername:
    def test_creates_profile_and_claim(self, test_database: Database) -> None:
        profile = test_database.set_username("alice-id", "Alice", email="a@example.com", now=T0)

        assert profile.username == "Alice"
        assert profile.wallet_balance == 0
        assert profile.role == "user"
        assert test_database.store.get(username_key("alice")) == {
            "kind": "username",
            "username": "Alice",
            "user_id": "alice-id",
        }

    def test_taken_name_conflicts_case_insensitively(self, test_database: Database) -> None:
        test_database.set_username("alice-id", "Alice", now=T0)
        with pytest.raises(ConflictError):
            test_database.set_username("bob-id", "aLiCe", now=T0)
        assert test_database.get_profile("bob-id") is None

    def test_existing_profile_is_renamed(self, test_database: Database) -> None:
        test_database.set_username("alice-id", "alice", now=T0)
        profile = test_database.set_username("alice-id", "alicia", now=T0)

        assert profile.username == "alicia"
        assert test_database.store.get(username_key("alice")) is None
        assert len(test_database.list_users()) == 1

    def test_concurrent_claims_for_one_name(self, test_database: Database) -> None:
        winners: list[str] = []
        losers: list[str] = []
        barrier = threading.Barrier(4)

        def claim(user_id: str) -> None:
            barrier.wait()
            try:
                test_database.set_username(user_id, "popular", now=T0)
                winners.append(user_id)
            except ConflictError:
                losers.append(user_id)

        threads = [threading.Thread(target=claim, args=(f"u{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(losers) == 3
        assert test_database.store.get(username_key("popular"))["user_id"] == winners[0]


class TestUpdateUsername:
    def test_rename_frees_old_name(self, test_database: Database, make_user) -> None:
        make_user("alice-id", "alice")
        test_database.update_username("alice-id", "alicia")

        profile = make_user("bob-id", "alice")

        assert profile.username == "alice"

    def test_case_change_of_own_name(self, test_database: Database, make_user) -> None:
        make_user("alice-id", "alice")
        profile = test_database.update_username("alice-id", "ALICE")
        assert profile.username == "ALICE"
        assert test_database.store.get(username_key("alice"))["user_id"] == "alice-id"

    def test_propagates_to_posts_and_messages(self, test_database: Database, make_user) -> None:
        make_user("alice-id", "alice")
        make_user("bob-id", "bob")
        post = test_database.create_post("alice-id", text="hi", now=T0)
        bobs_post = test_database.create_post("bob-id", text="yo", now=T0)
        chat = test_database.create_chat("alice-id", "c", "d", now=T0)
        test_database.send_message(chat.chat_id, "alice-id", "hello")

        test_database.update_username("alice-id", "alicia")

        assert test_database.require_post(post.post_id).username == "alicia"
        assert test_database.require_post(bobs_post.post_id).username == "bob"
        authored = [m for m in test_database.list_messages(chat.chat_id) if m.user_id == "alice-id"]
        assert [m.username for m in authored] == ["alicia"]

    def test_missing_profile(self, test_database: Database) -> None:
        with pytest.raises(NotFoundError):
            test_database.update_username("ghost-id", "ghost")


class TestProfileFields:
    def test_update_bio(self, test_database: Database, make_user) -> None:
        make_user("alice-id", "alice")
        assert test_database.update_bio("alice-id", "hello there").bio == "hello there"

    @pytest.mark.parametrize(
        "update",
        [
            lambda db: db.update_bio("ghost-id", "bio"),
            lambda db: db.update_role("ghost-id", "leader"),
        ],
        ids=["bio", "role"],
    )
    def test_missing_profile(self, test_database: Database, update) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            update(test_database)
        assert exc_info.value.message == "Profile not found"

    def test_update_role(self, test_database: Database, make_user) -> None:
        make_user("alice-id", "alice")
        assert test_database.update_role("alice-id", "leader").role == "leader"

    def test_is_admin(self, test_database: Database, make_user) -> None:
        make_user("alice-id", "alice")
        make_user("bob-id", "bob")
        test_database.update_role("bob-id", "admin")

        assert test_database.is_admin("alice-id") is False
        assert test_database.is_admin("bob-id") is True
        with patch.object(Config, "ADMIN_USER_IDS", {"alice-id"}):
            assert test_database.is_admin("alice-id") is True

    def test_set_avatar_replaces_previous_blob(
        self, test_database: Database, test_blob_store: BlobStore, make_user
    ) -> None:
        make_user("alice-id", "alice")

        first = test_database.set_avatar("alice-id", b"one", "image/png")
        second = test_database.set_avatar("alice-id", b"two", "image/png")

        assert first.avatar_path != second.avatar_path
        assert not test_blob_store.exists(first.avatar_path)
        assert test_blob_store.get(second.avatar_path) == (b"two", "image/png")
        assert second.avatar_url.endswith(second.avatar_path)

    def test_set_avatar_requires_profile(
        self, test_database: Database, test_blob_store: BlobStore
    ) -> None:
        with pytest.raises(NotFoundError):
            test_database.set_avatar("ghost-id", b"one", "image/png")

    def test_list_users_oldest_first(self, test_database: Database) -> None:
        test_database.set_username("b-id", "second", now=T0.replace(hour=13))
        test_database.set_username("a-id", "first", now=T0)
        assert [p.username for p in test_database.list_users()] == ["first", "second"]
