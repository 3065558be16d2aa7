"""
GeoPoll Database Schema
=======================

SQLite schema for the tables the poller reads and writes:
- publishers: feed sources with endpoint and contact
- events: features ingested per publisher, unique per (publisher, feature)
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema manager for the GeoPoll SQLite database."""

    def __init__(self, db_path: str = "data/geopoll.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables and indexes."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_publishers_table(conn)
            self._create_events_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_publishers_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS publishers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT,
                endpoint TEXT NOT NULL UNIQUE,
                email TEXT,
                description TEXT,
                active BOOLEAN DEFAULT TRUE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP
            )
        """
        )

    def _create_events_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                publisher_id INTEGER NOT NULL,
                feature_id TEXT NOT NULL,
                title TEXT,
                description TEXT,
                geometry TEXT,       -- GeoJSON geometry
                properties TEXT NOT NULL DEFAULT '{}',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (publisher_id, feature_id),
                FOREIGN KEY (publisher_id) REFERENCES publishers(id) ON DELETE CASCADE
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_publishers_active ON publishers(active)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_events_publisher ON events(publisher_id, created_at)"
        )

    def verify_schema(self) -> bool:
        """Check that all expected tables exist."""
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        tables = {row[0] for row in rows}
        missing = {"publishers", "events"} - tables
        if missing:
            logger.warning(f"Missing tables: {sorted(missing)}")
            return False
        return True
