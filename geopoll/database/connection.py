"""
GeoPoll Database Connection Management
======================================

A small pool of SQLite connections shared by the poll workers. SQLite
serializes writers, so ingestion runs inside ``transaction()``, which takes
the write lock up front instead of failing halfway through a page.
"""

import sqlite3
import threading
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Iterator, List
from queue import Queue, Empty, Full

logger = logging.getLogger(__name__)

PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
)


class DatabaseConnection:
    """Pooled SQLite connections usable from any worker thread."""

    def __init__(self, db_path: str = "data/geopoll.db", pool_size: int = 5, acquire_timeout: float = 10.0):
        """Open ``pool_size`` connections to ``db_path``.

        Args:
            db_path: SQLite database file, parent directories are created
            pool_size: Connections kept open
            acquire_timeout: Seconds to wait for a free connection before
                opening an overflow one
        """
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.acquire_timeout = acquire_timeout
        self.pool: Queue = Queue(maxsize=pool_size)
        self.lock = threading.Lock()
        self.open_connections = 0

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        for _ in range(pool_size):
            self.pool.put(self._connect())

    def _connect(self) -> sqlite3.Connection:
        # Connections move between worker threads through the pool
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        for pragma in PRAGMAS:
            conn.execute(pragma)
        conn.row_factory = sqlite3.Row

        with self.lock:
            self.open_connections += 1
        logger.debug(f"Opened connection to {self.db_path} ({self.open_connections} open)")
        return conn

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection; it goes back to the pool on exit.

        Usage:
            with db.get_connection() as conn:
                rows = conn.execute("SELECT * FROM publishers").fetchall()
        """
        waited_from = time.monotonic()
        try:
            conn = self.pool.get(timeout=self.acquire_timeout)
        except Empty:
            logger.warning(f"No free connection after {self.acquire_timeout}s, opening an overflow connection")
            conn = self._connect()

        waited = time.monotonic() - waited_from
        if waited > 1.0:
            logger.warning(f"Waited {waited:.2f}s for a database connection")

        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database error on {self.db_path}: {e}")
            try:
                conn.rollback()
            except sqlite3.Error:
                logger.debug("Rollback after database error failed")
            raise
        finally:
            self._release(conn)

    def _release(self, conn: sqlite3.Connection) -> None:
        try:
            self.pool.put_nowait(conn)
        except Full:
            conn.close()
            with self.lock:
                self.open_connections -= 1

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one write transaction.

        Commits on success, rolls back and re-raises on any exception.
        """
        with self.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    def execute_query(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchall()

    def execute_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchone()

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Run a write statement in its own transaction, return affected rows."""
        with self.get_connection() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount

    def close_all_connections(self) -> None:
        """Close every idle connection in the pool."""
        closed = 0
        while True:
            try:
                self.pool.get_nowait().close()
            except Empty:
                break
            closed += 1

        with self.lock:
            self.open_connections -= closed
        logger.debug(f"Closed {closed} connections to {self.db_path}")


_db_manager: Optional[DatabaseConnection] = None


def get_db_manager(db_path: str = "data/geopoll.db", pool_size: int = 5) -> DatabaseConnection:
    """Process-wide connection pool, created on first use."""
    global _db_manager

    if _db_manager is None:
        _db_manager = DatabaseConnection(db_path, pool_size=pool_size)

    return _db_manager
