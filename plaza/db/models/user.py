"""User profile database operations mixin.

Contains all methods for UserProfile management including:
- Username registration and renaming (unique, case-insensitive)
- Bio, avatar and role updates
- Listing profiles

Usernames are unique through claim documents ("username:{name}"): a profile
and its claim are written in one batch, and a claim can only be created if
it does not exist yet, so two users racing for the same name cannot both win.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from plaza.config import Config
from plaza.db.blob_store import get_blob_store, make_avatar_key
from plaza.db.document_store import WriteOp
from plaza.db.keys import MESSAGE_PREFIX, POST_PREFIX, USER_PREFIX, user_key, username_key
from plaza.db.models.base import utcnow
from plaza.db.models.documents import UsernameClaim, UserProfile
from plaza.exceptions import ConflictError, NotFoundError, ValidationError
from plaza.utils.logging import get_logger

if TYPE_CHECKING:
    from plaza.db.document_store import DocumentStore

logger = get_logger(__name__)


def normalize_username(username: str) -> str:
    """Strip and validate a username. Raises ValidationError."""
    username = username.strip()
    if len(username) < Config.USERNAME_MIN_LENGTH:
        raise ValidationError(
            f"Username must be at least {Config.USERNAME_MIN_LENGTH} characters",
            {"field": "username"},
        )
    if len(username) > Config.USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be at most {Config.USERNAME_MAX_LENGTH} characters",
            {"field": "username"},
        )
    return username


class UserMixin:
    """Mixin providing UserProfile-related database operations."""

    _store: DocumentStore

    def get_profile(self, user_id: str) -> UserProfile | None:
        document = self._store.get(user_key(user_id))
        return UserProfile.model_validate(document) if document else None

    def require_profile(self, user_id: str) -> UserProfile:
        profile = self.get_profile(user_id)
        if profile is None:
            raise NotFoundError("Profile", {"user_id": user_id})
        return profile

    def list_users(self) -> list[UserProfile]:
        """All profiles, oldest first."""
        profiles = [
            UserProfile.model_validate(found.document)
            for found in self._store.iter_prefix(USER_PREFIX)
        ]
        profiles.sort(key=lambda p: p.created_at)
        return profiles

    def _claim_ops(self, user_id: str, new_name: str, old_name: str | None) -> list[WriteOp]:
        """Writes moving the user's username claim from ``old_name`` to ``new_name``.

        Raises ConflictError if another user holds ``new_name``.
        """
        new_key = username_key(new_name)
        claim = self._store.get_versioned(new_key)
        if claim is not None and claim.document["user_id"] != user_id:
            raise ConflictError("Username already taken", {"username": new_name})

        claim_doc = UsernameClaim(username=new_name, user_id=user_id).to_document()
        ops = [WriteOp.put(new_key, claim_doc, expected_version=claim.version if claim else 0)]
        if old_name is not None and username_key(old_name) != new_key:
            old_claim = self._store.get_versioned(username_key(old_name))
            if old_claim is not None and old_claim.document["user_id"] == user_id:
                ops.append(WriteOp.delete(old_claim.key, expected_version=old_claim.version))
        return ops

    def set_username(
        self,
        user_id: str,
        username: str,
        email: str | None = None,
        now: datetime | None = None,
    ) -> UserProfile:
        """Register the user's profile with a username.

        If the profile already exists this renames it instead.
        Raises ValidationError or ConflictError (name taken).
        """
        username = normalize_username(username)
        now = now or utcnow()

        def attempt() -> UserProfile:
            current = self._store.get_versioned(user_key(user_id))
            if current is not None:
                return self._rename(user_id, username)
            profile = UserProfile(user_id=user_id, email=email, username=username, created_at=now)
            ops = self._claim_ops(user_id, username, None)
            ops.append(WriteOp.put(user_key(user_id), profile.to_document(), expected_version=0))
            self._store.write_batch(ops)
            return profile

        profile = self._store.run_optimistic("set_username", attempt)
        logger.info("Username set", extra={"user_id": user_id})
        return profile

    def _rename(self, user_id: str, username: str) -> UserProfile:
        """One attempt at renaming: profile and claims in one batch."""
        current = self._store.get_versioned(user_key(user_id))
        if current is None:
            raise NotFoundError("Profile", {"user_id": user_id})
        profile = UserProfile.model_validate(current.document)
        ops = self._claim_ops(user_id, username, profile.username)
        profile.username = username
        ops.append(
            WriteOp.put(user_key(user_id), profile.to_document(), expected_version=current.version)
        )
        self._store.write_batch(ops)
        return profile

    def update_username(self, user_id: str, username: str) -> UserProfile:
        """Rename a user and rewrite the name cached on their posts and messages.

        The profile rename is atomic; the propagation afterwards is best
        effort and converges on the next rename if interrupted.
        """
        username = normalize_username(username)
        profile = self._store.run_optimistic(
            "update_username", lambda: self._rename(user_id, username)
        )
        updated = self._propagate_username(user_id, username)
        logger.info("Username updated", extra={"user_id": user_id, "documents_updated": updated})
        return profile

    def _propagate_username(self, user_id: str, username: str) -> int:
        def mutate(document: dict[str, Any]) -> dict[str, Any] | None:
            if document.get("user_id") != user_id or document.get("username") == username:
                return None
            document["username"] = username
            return document

        updated = 0
        for prefix in (POST_PREFIX, MESSAGE_PREFIX):
            for found in self._store.iter_prefix(prefix):
                doc = found.document
                if doc.get("user_id") != user_id or doc.get("username") == username:
                    continue
                try:
                    self._store.update(found.key, mutate)
                except NotFoundError:
                    continue
                updated += 1
        return updated

    def update_bio(self, user_id: str, bio: str) -> UserProfile:
        def mutate(document: dict[str, Any]) -> dict[str, Any]:
            document["bio"] = bio or ""
            return document

        updated = self._store.update(user_key(user_id), mutate, "Profile")
        return UserProfile.model_validate(updated.document)

    def is_admin(self, user_id: str) -> bool:
        if user_id in Config.ADMIN_USER_IDS:
            return True
        profile = self.get_profile(user_id)
        return profile is not None and profile.role == "admin"

    def update_role(self, user_id: str, role: str) -> UserProfile:
        def mutate(document: dict[str, Any]) -> dict[str, Any]:
            document["role"] = role
            return document

        updated = self._store.update(user_key(user_id), mutate, "Profile")
        logger.info("User role updated", extra={"user_id": user_id, "role": role})
        return UserProfile.model_validate(updated.document)

    def set_avatar(self, user_id: str, data: bytes, mime_type: str) -> UserProfile:
        """Upload an avatar image and point the profile at it.

        The previous avatar blob is removed once the profile no longer
        references it.
        """
        self.require_profile(user_id)
        blob_store = get_blob_store()
        blob_key = make_avatar_key(user_id)
        url = blob_store.save(blob_key, data, mime_type)
        previous_path: str | None = None

        def mutate(document: dict[str, Any]) -> dict[str, Any]:
            nonlocal previous_path
            previous_path = document.get("avatar_path")
            document["avatar_url"] = url
            document["avatar_path"] = blob_key
            return document

        updated = self._store.update(user_key(user_id), mutate, "Profile")
        if previous_path and previous_path != blob_key:
            blob_store.delete(previous_path)
        logger.info("Avatar updated", extra={"user_id": user_id, "size": len(data)})
        return UserProfile.model_validate(updated.document)
