"""Base database infrastructure.

Contains the core Database class owning the document store. The Database
class is extended via mixins defined in other modules; each mixin talks to
the store only through ``self._store``.
"""

from datetime import UTC, datetime
from pathlib import Path

from plaza.config import Config
from plaza.db.document_store import DocumentStore
from plaza.db.keys import user_key
from plaza.db.models.documents import validate_document
from plaza.utils.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


class DatabaseBase:
    """Base database class with core infrastructure.

    Owns the DocumentStore (connection pooling, migrations, CAS writes) and
    installs the per-kind schema validation hook on it.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or Config.DATABASE_PATH
        self._store = DocumentStore(self.db_path, validator=validate_document)

    @property
    def store(self) -> DocumentStore:
        return self._store

    def close(self) -> None:
        """Close all connections in the pool.

        Call this on application shutdown.
        """
        self._store.close()

    def _identity(self, user_id: str) -> tuple[str, str | None]:
        """Display name and avatar for a user, falling back to a placeholder."""
        profile = self._store.get(user_key(user_id))
        if profile is None:
            return Config.UNKNOWN_USERNAME, None
        return profile["username"], profile.get("avatar_url")
