"""Prefix-addressable document store backed by SQLite.

This is the only shared, mutable resource of the application. Documents are
JSON objects stored under string keys; the store only interprets the key
prefix (entity kind). Every row carries a version that increases by one on
each write, which gives callers optimistic concurrency control:

- ``get`` / ``get_versioned``: point lookup
- ``set``: unconditional full overwrite
- ``delete``: idempotent removal
- ``scan_by_prefix``: all documents whose key starts with a prefix
- ``compare_and_set``: write only if the version still matches what was read
- ``write_batch``: several puts/deletes, each optionally version-checked,
  committed atomically in one transaction
- ``update`` / ``run_optimistic``: read-modify-write loops that retry on
  version conflicts and give up with ConflictError after a bounded number of
  attempts

Scans are not snapshots: a scan may interleave with concurrent writes to keys
under the same prefix. Callers that need an order sort by a timestamp field.
"""

from __future__ import annotations

import json
import sqlite3
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from yoyo import get_backend, read_migrations

from plaza.config import Config
from plaza.exceptions import ConflictError, NotFoundError, ValidationError, VersionConflict
from plaza.utils.connection_pool import ConnectionPool
from plaza.utils.db_helpers import execute_with_timing, init_query_logging
from plaza.utils.logging import get_logger
from plaza.utils.retry import calculate_delay, with_store_retry

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent.parent / "migrations"

Document = dict[str, Any]
DocumentValidator = Callable[[str, Document], Document]


@dataclass(frozen=True)
class VersionedDocument:
    """A document together with the version it was read at."""

    key: str
    document: Document
    version: int


@dataclass(frozen=True)
class WriteOp:
    """One write inside a batch.

    ``document=None`` deletes the key. ``expected_version`` of None writes
    unconditionally; 0 requires that the key does not exist yet.
    """

    key: str
    document: Document | None
    expected_version: int | None = None

    @classmethod
    def put(cls, key: str, document: Document, expected_version: int | None = None) -> WriteOp:
        return cls(key, document, expected_version)

    @classmethod
    def delete(cls, key: str, expected_version: int | None = None) -> WriteOp:
        return cls(key, None, expected_version)


def prefix_upper_bound(prefix: str) -> str:
    """Smallest string greater than every string starting with ``prefix``."""
    return prefix[:-1] + chr(ord(prefix[-1]) + 1)


class DocumentStore:
    """SQLite implementation of the document store contract."""

    def __init__(
        self,
        db_path: Path | None = None,
        validator: DocumentValidator | None = None,
    ) -> None:
        self.db_path = db_path or Config.DATABASE_PATH
        self._validator = validator
        self._should_log_queries, self._slow_query_threshold_ms = init_query_logging()
        self._pool = ConnectionPool(self.db_path)
        self._init_db()

    def close(self) -> None:
        """Close all pooled connections. Call on application shutdown."""
        self._pool.close_all()

    def ping(self) -> tuple[bool, str | None]:
        """Check the store answers queries. Returns (ok, error message)."""
        try:
            with self._pool.get_connection() as conn:
                conn.execute("SELECT 1 FROM documents LIMIT 1").fetchall()
        except sqlite3.Error as e:
            logger.error("Document store ping failed", extra={"error": str(e)})
            return False, str(e)
        return True, None

    def _execute(
        self,
        conn: sqlite3.Connection,
        query: str,
        params: tuple[Any, ...] = (),
    ) -> sqlite3.Cursor:
        return execute_with_timing(
            conn,
            query,
            params,
            should_log=self._should_log_queries,
            slow_query_threshold_ms=self._slow_query_threshold_ms,
        )

    def _init_db(self) -> None:
        """Run yoyo migrations to initialize/update the store schema."""
        logger.debug("Initializing document store", extra={"db_path": str(self.db_path)})
        backend = get_backend(f"sqlite:///{self.db_path}")
        migrations = read_migrations(str(MIGRATIONS_DIR))
        try:
            with backend.lock():
                migrations_to_apply = backend.to_apply(migrations)
                if migrations_to_apply:
                    logger.info(
                        "Applying database migrations", extra={"count": len(migrations_to_apply)}
                    )
                backend.apply_migrations(migrations_to_apply)
        finally:
            backend.connection.close()

    def _validate(self, key: str, document: Document) -> Document:
        if not key or ":" not in key:
            raise ValidationError("Keys must be namespaced as '<kind>:<id>'", {"key": key})
        if self._validator is None:
            return document
        return self._validator(key, document)

    @staticmethod
    def _row_to_versioned(row: sqlite3.Row) -> VersionedDocument:
        return VersionedDocument(
            key=row["key"],
            document=json.loads(row["body"]),
            version=row["version"],
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @with_store_retry
    def get_versioned(self, key: str) -> VersionedDocument | None:
        """Point lookup returning the document and its current version."""
        with self._pool.get_connection() as conn:
            row = self._execute(
                conn,
                "SELECT key, body, version FROM documents WHERE key = ?",
                (key,),
            ).fetchone()
        return self._row_to_versioned(row) if row else None

    def get(self, key: str) -> Document | None:
        """Point lookup. Returns None when the key is absent."""
        found = self.get_versioned(key)
        return found.document if found else None

    @with_store_retry
    def scan_versioned(
        self,
        prefix: str,
        limit: int | None = None,
        after_key: str | None = None,
    ) -> list[VersionedDocument]:
        """All documents whose key starts with ``prefix``, with versions.

        ``limit`` and ``after_key`` page through the prefix in key order.
        """
        clauses: list[str] = []
        params: list[Any] = []
        if prefix:
            clauses.append("key >= ? AND key < ?")
            params.extend([prefix, prefix_upper_bound(prefix)])
        if after_key is not None:
            clauses.append("key > ?")
            params.append(after_key)
        query = "SELECT key, body, version FROM documents"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY key"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._pool.get_connection() as conn:
            rows = self._execute(conn, query, tuple(params)).fetchall()
        return [self._row_to_versioned(row) for row in rows]

    def scan_by_prefix(
        self,
        prefix: str,
        limit: int | None = None,
        after_key: str | None = None,
    ) -> list[Document]:
        """All documents whose key starts with ``prefix``."""
        return [found.document for found in self.scan_versioned(prefix, limit, after_key)]

    def iter_prefix(self, prefix: str, page_size: int | None = None) -> Iterator[VersionedDocument]:
        """Walk a prefix page by page instead of loading it in one query."""
        page_size = page_size or Config.STORE_SCAN_PAGE_SIZE
        after_key: str | None = None
        while True:
            page = self.scan_versioned(prefix, limit=page_size, after_key=after_key)
            yield from page
            if len(page) < page_size:
                return
            after_key = page[-1].key

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, key: str, document: Document) -> int:
        """Unconditionally overwrite a document. Returns the new version."""
        return self.write_batch([WriteOp.put(key, document)])[key]

    def compare_and_set(self, key: str, document: Document, expected_version: int) -> int:
        """Write only if the stored version equals ``expected_version``.

        Raises VersionConflict otherwise. Returns the new version.
        """
        return self.write_batch([WriteOp.put(key, document, expected_version)])[key]

    @with_store_retry
    def delete(self, key: str) -> bool:
        """Delete a key. Deleting an absent key is not an error.

        Returns True if a document was removed.
        """
        with self._pool.transaction() as conn:
            cursor = self._execute(conn, "DELETE FROM documents WHERE key = ?", (key,))
            deleted = cursor.rowcount > 0
        logger.debug("Document deleted", extra={"key": key, "existed": deleted})
        return deleted

    def write_batch(self, ops: list[WriteOp]) -> dict[str, int]:
        """Apply several writes atomically.

        Either every op is applied or none is. A version mismatch on any
        conditioned op raises VersionConflict and rolls the batch back.

        Returns the resulting version per key (0 for deleted keys).
        """
        prepared = [
            WriteOp(op.key, self._validate(op.key, op.document), op.expected_version)
            if op.document is not None
            else op
            for op in ops
        ]
        return self._apply_batch(prepared)

    @with_store_retry
    def _apply_batch(self, ops: list[WriteOp]) -> dict[str, int]:
        now = datetime.now(UTC).isoformat()
        versions: dict[str, int] = {}
        with self._pool.transaction() as conn:
            for op in ops:
                row = self._execute(
                    conn, "SELECT version FROM documents WHERE key = ?", (op.key,)
                ).fetchone()
                current = row["version"] if row else 0

                if op.expected_version is not None and current != op.expected_version:
                    logger.debug(
                        "Version conflict",
                        extra={"key": op.key, "expected": op.expected_version, "actual": current},
                    )
                    raise VersionConflict(op.key, op.expected_version, current)

                if op.document is None:
                    if row:
                        self._execute(conn, "DELETE FROM documents WHERE key = ?", (op.key,))
                    versions[op.key] = 0
                    continue

                body = json.dumps(op.document, separators=(",", ":"))
                if row:
                    self._execute(
                        conn,
                        "UPDATE documents SET body = ?, version = ?, updated_at = ? WHERE key = ?",
                        (body, current + 1, now, op.key),
                    )
                else:
                    self._execute(
                        conn,
                        """INSERT INTO documents (key, kind, body, version, created_at, updated_at)
                           VALUES (?, ?, ?, 1, ?, ?)""",
                        (op.key, op.key.split(":", 1)[0], body, now, now),
                    )
                versions[op.key] = current + 1

        if len(ops) > 1:
            logger.debug("Batch committed", extra={"op_count": len(ops)})
        return versions

    # ------------------------------------------------------------------
    # Optimistic read-modify-write
    # ------------------------------------------------------------------

    def run_optimistic[T](self, operation: str, attempt: Callable[[], T]) -> T:
        """Run ``attempt`` until it completes without a version conflict.

        ``attempt`` must re-read everything it depends on each time it runs.
        Raises ConflictError once Config.STORE_CAS_MAX_ATTEMPTS is exhausted.
        """
        max_attempts = Config.STORE_CAS_MAX_ATTEMPTS
        for attempt_number in range(max_attempts):
            try:
                return attempt()
            except VersionConflict as e:
                if attempt_number + 1 >= max_attempts:
                    logger.warning(
                        "Optimistic update gave up",
                        extra={"operation": operation, "key": e.key, "attempts": max_attempts},
                    )
                    raise ConflictError(
                        "Too much concurrent activity, please retry",
                        {"operation": operation, "key": e.key},
                    ) from e
                time.sleep(calculate_delay(attempt_number))
        raise AssertionError("unreachable")

    def update(
        self,
        key: str,
        mutate: Callable[[Document], Document | None],
        resource: str = "Document",
    ) -> VersionedDocument:
        """Read a document, apply ``mutate`` and write it back with CAS.

        ``mutate`` receives a fresh copy on every attempt and returns the new
        document, or None to leave the stored document untouched. Raises
        NotFoundError if the key is absent.
        """

        def attempt() -> VersionedDocument:
            current = self.get_versioned(key)
            if current is None:
                raise NotFoundError(resource, {"key": key})
            updated = mutate(json.loads(json.dumps(current.document)))
            if updated is None:
                return current
            version = self.compare_and_set(key, updated, current.version)
            return VersionedDocument(key, self._validate(key, updated), version)

        return self.run_optimistic(f"update {key.split(':', 1)[0]}", attempt)
