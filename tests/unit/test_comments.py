"""Unit tests for the comment arena and add_comment."""

import sys
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from plaza.db.comment_tree import CommentTree
from plaza.db.models import CommentNode, Database
from plaza.exceptions import NotFoundError, ValidationError

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def node(comment_id: str, parent: str | None = None, text: str | None = None) -> CommentNode:
    return CommentNode(
        comment_id=comment_id,
        user_id="u1",
        username="u1",
        text=text or comment_id,
        parent_comment_id=parent,
        created_at=T0,
    )


class TestCommentTree:
    """Pure arena operations."""

    def test_roots_in_insertion_order(self) -> None:
        tree = CommentTree({}, [])
        tree.insert(node("a"))
        tree.insert(node("b"))
        assert tree.roots == ["a", "b"]
        assert len(tree) == 2

    def test_reply_appended_under_parent(self) -> None:
        tree = CommentTree({}, [])
        tree.insert(node("a"))
        tree.insert(node("b", parent="a"))
        tree.insert(node("c", parent="a"))
        tree.insert(node("d", parent="b"))

        assert tree.nodes["a"].reply_ids == ["b", "c"]
        assert tree.nodes["b"].reply_ids == ["d"]
        assert tree.nodes["d"].depth == 2
        assert tree.roots == ["a"]
        assert tree.check_forest() == []

    def test_missing_parent_leaves_tree_unchanged(self) -> None:
        tree = CommentTree({}, [])
        tree.insert(node("a"))
        with pytest.raises(NotFoundError):
            tree.insert(node("b", parent="nope"))
        assert set(tree.nodes) == {"a"}
        assert tree.nodes["a"].reply_ids == []

    def test_duplicate_id_rejected(self) -> None:
        tree = CommentTree({}, [])
        tree.insert(node("a"))
        with pytest.raises(ValidationError):
            tree.insert(node("a"))

    def test_depth_ceiling(self) -> None:
        tree = CommentTree({}, [])
        tree.insert(node("n0"))
        with patch("plaza.db.comment_tree.Config.COMMENT_MAX_DEPTH", 3):
            for i in range(1, 4):
                tree.insert(node(f"n{i}", parent=f"n{i - 1}"))
            with pytest.raises(ValidationError):
                tree.insert(node("n4", parent="n3"))
        assert "n4" not in tree.nodes

    def test_size_ceiling(self) -> None:
        tree = CommentTree({}, [])
        with patch("plaza.db.comment_tree.Config.COMMENT_MAX_PER_POST", 2):
            tree.insert(node("a"))
            tree.insert(node("b"))
            with pytest.raises(ValidationError):
                tree.insert(node("c"))

    def test_nested_view(self) -> None:
        tree = CommentTree({}, [])
        tree.insert(node("a"))
        tree.insert(node("b", parent="a"))
        tree.insert(node("c"))

        view = tree.nested(lambda n: {"id": n.comment_id})

        assert view == [
            {"id": "a", "replies": [{"id": "b", "replies": []}]},
            {"id": "c", "replies": []},
        ]

    def test_deep_thread_does_not_recurse(self) -> None:
        """Traversal depth is not bounded by the interpreter's recursion limit."""
        depth = sys.getrecursionlimit() + 100
        tree = CommentTree({}, [])
        tree.insert(node("n0"))
        with patch("plaza.db.comment_tree.Config.COMMENT_MAX_DEPTH", depth + 1):
            with patch("plaza.db.comment_tree.Config.COMMENT_MAX_PER_POST", depth + 10):
                for i in range(1, depth):
                    tree.insert(node(f"n{i}", parent=f"n{i - 1}"))

        assert tree.check_forest() == []
        view = tree.nested(lambda n: {"id": n.comment_id})
        levels = 0
        current = view
        while current:
            levels += 1
            current = current[0]["replies"]
        assert levels == depth

    def test_check_forest_reports_damage(self) -> None:
        tree = CommentTree({}, [])
        tree.insert(node("a"))
        tree.insert(node("b", parent="a"))
        tree.nodes["a"].reply_ids.append("ghost")
        tree.roots.append("b")
        tree.nodes["orphan"] = node("orphan", parent="a")

        problems = tree.check_forest()

        assert "dangling reference to ghost" in problems
        assert "b is reachable more than once" in problems
        assert "orphan is unreachable" in problems

    def test_nested_skips_dangling_and_repeated_ids(self) -> None:
        tree = CommentTree({}, [])
        tree.insert(node("a"))
        tree.nodes["a"].reply_ids.extend(["ghost", "a"])

        view = tree.nested(lambda n: {"id": n.comment_id})

        assert view == [{"id": "a", "replies": []}]


class TestAddComment:
    """add_comment through the database."""

    @pytest.fixture
    def post_id(self, test_database: Database, make_user) -> str:
        make_user("owner-id", "owner")
        make_user("reader-id", "reader")
        return test_database.create_post("owner-id", text="post", now=T0).post_id

    def test_reply_placed_once_under_parent(self, test_database: Database, post_id: str) -> None:
        c1 = test_database.add_comment(post_id, "reader-id", "first", now=T0)
        test_database.add_comment(post_id, "owner-id", "second", now=T0)
        r1 = test_database.add_comment(
            post_id, "owner-id", "reply", parent_comment_id=c1.comment_id, now=T0
        )

        post = test_database.require_post(post_id)
        tree = CommentTree.of(post)
        assert len(post.comment_roots) == 2
        assert post.comments[c1.comment_id].reply_ids == [r1.comment_id]
        assert r1.depth == 1
        assert tree.check_forest() == []
        occurrences = sum(n.reply_ids.count(r1.comment_id) for n in post.comments.values())
        assert occurrences + post.comment_roots.count(r1.comment_id) == 1

    def test_missing_parent_writes_nothing(self, test_database: Database, post_id: str) -> None:
        with pytest.raises(NotFoundError):
            test_database.add_comment(post_id, "reader-id", "hi", parent_comment_id="nope")
        assert test_database.require_post(post_id).comments == {}
        assert test_database.list_notifications("owner-id") == []

    def test_missing_post(self, test_database: Database) -> None:
        with pytest.raises(NotFoundError):
            test_database.add_comment("missing", "reader-id", "hi")

    def test_blank_text_rejected(self, test_database: Database, post_id: str) -> None:
        with pytest.raises(ValidationError):
            test_database.add_comment(post_id, "reader-id", "   ")

    def test_text_is_stripped(self, test_database: Database, post_id: str) -> None:
        comment = test_database.add_comment(post_id, "reader-id", "  hi  ")
        assert comment.text == "hi"

    def test_comment_notifies_owner_every_time(
        self, test_database: Database, post_id: str
    ) -> None:
        test_database.add_comment(post_id, "reader-id", "one", now=T0)
        test_database.add_comment(post_id, "reader-id", "two", now=T0 + timedelta(seconds=1))
        test_database.add_comment(post_id, "owner-id", "self", now=T0 + timedelta(seconds=2))

        notifications = test_database.list_notifications("owner-id")
        assert [n.type for n in notifications] == ["comment", "comment"]
        assert all(n.from_user_id == "reader-id" for n in notifications)
