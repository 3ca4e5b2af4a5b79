"""Blob storage for uploaded images.

Images (avatars, post images, chat pictures) live in a separate SQLite
database so the document store stays small. Documents only keep the blob's
storage path and public URL.

Key format:
- Avatars: "avatars/{user_id}/{upload_id}"
- Post images: "posts/{post_id}/{upload_id}"
- Chat images: "chats/{chat_id}/{upload_id}"
"""

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from plaza.config import Config
from plaza.db.document_store import prefix_upper_bound
from plaza.db.keys import new_id
from plaza.utils.db_helpers import execute_with_timing, init_query_logging
from plaza.utils.logging import get_logger

logger = get_logger(__name__)


def make_avatar_key(user_id: str) -> str:
    return f"avatars/{user_id}/{new_id()}"


def make_post_image_key(post_id: str) -> str:
    return f"posts/{post_id}/{new_id()}"


def make_chat_image_key(chat_id: str) -> str:
    return f"chats/{chat_id}/{new_id()}"


def public_url(key: str) -> str:
    """URL under which the files route serves a blob."""
    return f"{Config.BLOB_PUBLIC_URL_PREFIX}/{key}"


class BlobStore:
    """SQLite-based blob storage for uploaded images."""

    def __init__(self, db_path: Path | None = None) -> None:
        """Initialize blob store.

        Args:
            db_path: Path to the blob database file. Uses Config.BLOB_STORAGE_PATH if not provided.
        """
        self.db_path = db_path or Config.BLOB_STORAGE_PATH
        self._should_log_queries, self._slow_query_threshold_ms = init_query_logging()
        self._init_db()

    @contextmanager
    def _get_conn(self) -> Generator[sqlite3.Connection]:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _execute_with_timing(
        self,
        conn: sqlite3.Connection,
        query: str,
        params: tuple[object, ...] = (),
    ) -> sqlite3.Cursor:
        return execute_with_timing(
            conn,
            query,
            params,
            should_log=self._should_log_queries,
            slow_query_threshold_ms=self._slow_query_threshold_ms,
            log_prefix="blob ",
        )

    def _init_db(self) -> None:
        """Initialize the blob database schema."""
        logger.debug("Initializing blob store", extra={"db_path": str(self.db_path)})
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS blobs (
                    key TEXT PRIMARY KEY,
                    data BLOB NOT NULL,
                    mime_type TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def save(self, key: str, data: bytes, mime_type: str) -> str:
        """Save a blob and return its public URL.

        Args:
            key: Unique key for the blob (e.g., "avatars/{user_id}/{upload_id}")
            data: Binary data to store
            mime_type: MIME type of the data
        """
        logger.debug(
            "Saving blob",
            extra={"key": key, "size": len(data), "mime_type": mime_type},
        )
        with self._get_conn() as conn:
            self._execute_with_timing(
                conn,
                """INSERT OR REPLACE INTO blobs (key, data, mime_type, size, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (key, data, mime_type, len(data), datetime.now(UTC).isoformat()),
            )
            conn.commit()
        return public_url(key)

    def get(self, key: str) -> tuple[bytes, str] | None:
        """Retrieve a blob from the store.

        Returns:
            Tuple of (data, mime_type) if found, None otherwise
        """
        with self._get_conn() as conn:
            row = self._execute_with_timing(
                conn,
                "SELECT data, mime_type FROM blobs WHERE key = ?",
                (key,),
            ).fetchone()

            if not row:
                return None

            return bytes(row["data"]), row["mime_type"]

    def delete(self, key: str) -> bool:
        """Delete a blob. Returns True if deleted, False if not found."""
        logger.debug("Deleting blob", extra={"key": key})
        with self._get_conn() as conn:
            cursor = self._execute_with_timing(
                conn,
                "DELETE FROM blobs WHERE key = ?",
                (key,),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_by_prefix(self, prefix: str) -> int:
        """Delete all blobs with keys starting with the given prefix.

        Used when a chat is deleted together with its pictures.

        Returns:
            Number of blobs deleted
        """
        with self._get_conn() as conn:
            cursor = self._execute_with_timing(
                conn,
                "DELETE FROM blobs WHERE key >= ? AND key < ?",
                (prefix, prefix_upper_bound(prefix)),
            )
            conn.commit()
            count = cursor.rowcount

        logger.debug("Blobs deleted by prefix", extra={"prefix": prefix, "count": count})
        return count

    def exists(self, key: str) -> bool:
        with self._get_conn() as conn:
            row = self._execute_with_timing(
                conn,
                "SELECT 1 FROM blobs WHERE key = ?",
                (key,),
            ).fetchone()
            return row is not None


# Global blob store instance (lazy initialization)
_blob_store: BlobStore | None = None


def get_blob_store() -> BlobStore:
    """Get the global blob store instance."""
    global _blob_store
    if _blob_store is None:
        _blob_store = BlobStore()
    return _blob_store


def reset_blob_store() -> None:
    """Reset the global blob store instance (for testing)."""
    global _blob_store
    _blob_store = None
