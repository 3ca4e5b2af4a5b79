"""Comment arena for a single post.

Comments are kept flat: ``nodes`` maps comment id to node, each node lists its
children by id in insertion order, and ``roots`` lists top-level comments in
order. New nodes are always appended as leaves, so a well-formed arena stays
a forest. Traversals use an explicit stack so deep threads cannot exhaust the
interpreter's recursion limit.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from plaza.config import Config
from plaza.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from plaza.db.models.documents import CommentNode, Post


class CommentTree:
    """Mutable view over a post's ``comments`` and ``comment_roots``."""

    def __init__(self, nodes: dict[str, CommentNode], roots: list[str]) -> None:
        self.nodes = nodes
        self.roots = roots

    @classmethod
    def of(cls, post: Post) -> CommentTree:
        """Wrap a post's arena. Mutations write through to the post."""
        return cls(post.comments, post.comment_roots)

    def __len__(self) -> int:
        return len(self.nodes)

    def insert(self, node: CommentNode) -> CommentNode:
        """Attach ``node`` as a new leaf.

        With no ``parent_comment_id`` the node becomes the last root; otherwise
        it becomes the parent's last reply. Raises NotFoundError if the parent
        is not in this arena and ValidationError when a size or depth ceiling
        would be exceeded. Nothing is modified when an error is raised.
        """
        if node.comment_id in self.nodes:
            raise ValidationError("Duplicate comment id", {"comment_id": node.comment_id})
        if len(self.nodes) >= Config.COMMENT_MAX_PER_POST:
            raise ValidationError(
                "This post has reached its comment limit",
                {"max_comments": Config.COMMENT_MAX_PER_POST},
            )

        if node.parent_comment_id is None:
            node.depth = 0
            self.nodes[node.comment_id] = node
            self.roots.append(node.comment_id)
            return node

        parent = self.nodes.get(node.parent_comment_id)
        if parent is None:
            raise NotFoundError("Parent comment", {"comment_id": node.parent_comment_id})
        if parent.depth + 1 > Config.COMMENT_MAX_DEPTH:
            raise ValidationError(
                "Reply thread is nested too deeply",
                {"max_depth": Config.COMMENT_MAX_DEPTH},
            )

        node.depth = parent.depth + 1
        self.nodes[node.comment_id] = node
        parent.reply_ids.append(node.comment_id)
        return node

    def nested(
        self, render: Callable[[CommentNode], dict[str, Any]] | None = None
    ) -> list[dict[str, Any]]:
        """Materialize the threaded view: each rendered node gets a ``replies`` list.

        Ids that do not resolve are skipped, and a node is emitted at most once.
        """
        render = render or (lambda n: n.model_dump(mode="json"))
        result: list[dict[str, Any]] = []
        seen: set[str] = set()
        # (comment id, list the rendered node is appended to)
        stack: list[tuple[str, list[dict[str, Any]]]] = [
            (root_id, result) for root_id in reversed(self.roots)
        ]
        while stack:
            comment_id, siblings = stack.pop()
            node = self.nodes.get(comment_id)
            if node is None or comment_id in seen:
                continue
            seen.add(comment_id)
            rendered = render(node)
            rendered["replies"] = []
            siblings.append(rendered)
            for reply_id in reversed(node.reply_ids):
                stack.append((reply_id, rendered["replies"]))
        return result

    def check_forest(self) -> list[str]:
        """Verify structural integrity. Returns a list of problems (empty if sound).

        Every node must be reachable from exactly one root path, every child
        reference must resolve, and each child's ``parent_comment_id`` must
        point back at the node listing it.
        """
        problems: list[str] = []
        visited: set[str] = set()
        stack: list[tuple[str, str | None]] = [(root_id, None) for root_id in reversed(self.roots)]
        while stack:
            comment_id, expected_parent = stack.pop()
            node = self.nodes.get(comment_id)
            if node is None:
                problems.append(f"dangling reference to {comment_id}")
                continue
            if comment_id in visited:
                problems.append(f"{comment_id} is reachable more than once")
                continue
            visited.add(comment_id)
            if node.parent_comment_id != expected_parent:
                problems.append(
                    f"{comment_id} claims parent {node.parent_comment_id}, "
                    f"listed under {expected_parent}"
                )
            for reply_id in reversed(node.reply_ids):
                stack.append((reply_id, comment_id))

        for comment_id in sorted(self.nodes.keys() - visited):
            problems.append(f"{comment_id} is unreachable")
        return problems
