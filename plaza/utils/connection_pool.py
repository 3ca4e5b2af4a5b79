"""Thread-local SQLite connection management for the document store.

Each request thread gets one connection that is reused for every store
operation it performs. Writers that must touch several keys atomically use
``transaction()``, which takes SQLite's write lock up front (BEGIN IMMEDIATE)
so version checks and writes inside the block cannot interleave with another
writer.

Usage:
    pool = ConnectionPool("/path/to/plaza.db")

    with pool.get_connection() as conn:
        conn.execute("SELECT body FROM documents WHERE key = ?", (key,))

    with pool.transaction() as conn:
        ...  # committed on exit, rolled back on exception
"""

import sqlite3
import threading
import weakref
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from plaza.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionPool:
    """Thread-local SQLite connection pool.

    SQLite serializes writers at the file level, so sharing connections across
    threads buys nothing; one connection per thread avoids thread-safety issues
    and open/close overhead.
    """

    def __init__(self, db_path: Path | str, busy_timeout_seconds: float = 30.0) -> None:
        self.db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self.busy_timeout_seconds = busy_timeout_seconds
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        logger.debug("Connection pool created", extra={"db_path": str(self.db_path)})

    @staticmethod
    def _release_connection(
        lock: threading.Lock,
        connections: dict[int, sqlite3.Connection],
        thread_id: int,
    ) -> None:
        """Close a connection once its owning Thread object is garbage-collected.

        Registered through weakref.finalize, so it must not reference the pool.
        """
        with lock:
            conn = connections.pop(thread_id, None)
        if conn is not None:
            try:
                conn.close()
            except sqlite3.Error:
                pass

    def _reap_dead_threads(self) -> None:
        """Close connections owned by threads that have exited.

        Must be called with self._lock held.
        """
        alive_thread_ids = {t.ident for t in threading.enumerate()}
        dead_thread_ids = [tid for tid in self._connections if tid not in alive_thread_ids]
        for tid in dead_thread_ids:
            conn = self._connections.pop(tid)
            try:
                conn.close()
            except sqlite3.Error:
                pass
        if dead_thread_ids:
            logger.debug(
                "Reaped dead thread connections",
                extra={"dead_count": len(dead_thread_ids), "remaining": len(self._connections)},
            )

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=self.busy_timeout_seconds,
        )
        conn.row_factory = sqlite3.Row
        # WAL lets readers proceed while a batch holds the write lock
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _get_thread_connection(self) -> sqlite3.Connection:
        """Get or create the connection for the current thread."""
        thread_id = threading.get_ident()
        conn: sqlite3.Connection | None = getattr(self._local, "connection", None)

        if conn is not None:
            try:
                conn.execute("SELECT 1")
                return conn
            except sqlite3.Error:
                logger.warning(
                    "Thread connection was broken, creating new one",
                    extra={"thread_id": thread_id, "db_path": str(self.db_path)},
                )
                with self._lock:
                    self._connections.pop(thread_id, None)

        conn = self._create_connection()
        self._local.connection = conn

        with self._lock:
            self._reap_dead_threads()
            self._connections[thread_id] = conn

        weakref.finalize(
            threading.current_thread(),
            ConnectionPool._release_connection,
            self._lock,
            self._connections,
            thread_id,
        )

        logger.debug(
            "Created new thread connection",
            extra={"thread_id": thread_id, "total_connections": len(self._connections)},
        )
        return conn

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection]:
        """Yield the current thread's connection.

        The connection stays open for reuse. Any open transaction is rolled back
        if the block raises.
        """
        conn = self._get_thread_connection()
        try:
            yield conn
        except Exception:
            try:
                conn.rollback()
            except sqlite3.Error:
                pass
            raise

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection]:
        """Run a block inside one write transaction holding the write lock."""
        with self.get_connection() as conn:
            if conn.in_transaction:
                conn.rollback()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def close_thread_connection(self) -> None:
        """Close the connection for the current thread."""
        thread_id = threading.get_ident()
        conn = getattr(self._local, "connection", None)
        if conn is None:
            return
        try:
            conn.close()
        except sqlite3.Error:
            pass
        self._local.connection = None
        with self._lock:
            self._connections.pop(thread_id, None)

    def close_all(self) -> None:
        """Close all connections in the pool. Call on application shutdown."""
        with self._lock:
            for conn in self._connections.values():
                try:
                    conn.close()
                except sqlite3.Error:
                    pass
            self._connections.clear()

        if hasattr(self._local, "connection"):
            self._local.connection = None

        logger.info("All pool connections closed", extra={"db_path": str(self.db_path)})

    def connection_count(self) -> int:
        """Return the number of active connections in the pool."""
        with self._lock:
            return len(self._connections)
