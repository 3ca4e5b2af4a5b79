"""Idempotent set-membership toggles.

Likes, chat membership and message views are lists of user ids embedded in a
container document; follow edges are whole documents whose existence is the
state. Both flavours flip presence through compare-and-set writes so that
concurrent togglers never lose each other's updates and an id is never stored
twice.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from plaza.db.document_store import WriteOp
from plaza.utils.logging import get_logger

if TYPE_CHECKING:
    from plaza.db.document_store import DocumentStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class ToggleResult:
    """Presence of the member after the toggle, and the resulting set size."""

    present: bool
    count: int


class ToggleMixin:
    """Mixin providing toggle operations over set-like fields and edge records."""

    _store: DocumentStore

    def toggle_member(
        self, key: str, field: str, member_id: str, resource: str = "Document"
    ) -> ToggleResult:
        """Flip ``member_id``'s presence in the list stored under ``field``.

        Raises NotFoundError if the container does not exist.
        """

        def mutate(document: dict[str, Any]) -> dict[str, Any]:
            members: list[str] = document.get(field) or []
            if member_id in members:
                document[field] = [m for m in members if m != member_id]
            else:
                document[field] = [*members, member_id]
            return document

        updated = self._store.update(key, mutate, resource)
        members = updated.document.get(field) or []
        result = ToggleResult(present=member_id in members, count=len(members))
        logger.debug(
            "Member toggled",
            extra={"key": key, "field": field, "member_id": member_id, "present": result.present},
        )
        return result

    def ensure_member(
        self, key: str, field: str, member_id: str, resource: str = "Document"
    ) -> bool:
        """Add ``member_id`` unless already present. Returns True if it was added."""
        added = False

        def mutate(document: dict[str, Any]) -> dict[str, Any] | None:
            nonlocal added
            members: list[str] = document.get(field) or []
            if member_id in members:
                added = False
                return None
            added = True
            document[field] = [*members, member_id]
            return document

        self._store.update(key, mutate, resource)
        return added

    def toggle_edge(self, key: str, make_document: Callable[[], dict[str, Any]]) -> bool:
        """Create the edge record if absent, delete it if present.

        Returns True if the edge exists afterwards.
        """

        def attempt() -> bool:
            current = self._store.get_versioned(key)
            if current is None:
                self._store.write_batch([WriteOp.put(key, make_document(), expected_version=0)])
                return True
            self._store.write_batch([WriteOp.delete(key, expected_version=current.version)])
            return False

        present = self._store.run_optimistic("toggle_edge", attempt)
        logger.debug("Edge toggled", extra={"key": key, "present": present})
        return present
