"""
Event Repository
================

Storage for events ingested from publisher feeds. Deduplication is enforced
by the (publisher_id, feature_id) unique constraint, so concurrent poll jobs
for the same publisher never create the same event twice.
"""

from typing import List, Optional
import sqlite3

from ..database.connection import DatabaseConnection
from ..database.models import Event
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class EventRepository:
    """Repository for event records."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("event_repository")

    def insert_new_events(self, events: List[Event], conn: sqlite3.Connection) -> List[Event]:
        """Insert events, skipping any already stored for the same feature.

        Runs on the caller's connection so it can share a transaction.

        Returns:
            Only the events that were actually inserted, in input order
        """
        created = []
        for event in events:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO events (
                    id, publisher_id, feature_id, title, description,
                    geometry, properties, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    event.id,
                    event.publisher_id,
                    event.feature_id,
                    event.title,
                    event.description,
                    event.geometry_json(),
                    event.properties_json(),
                    event.created_at.isoformat() if event.created_at else None,
                ),
            )
            if cursor.rowcount == 1:
                created.append(event)

        return created

    def get_events_for_publisher(self, publisher_id: int, limit: Optional[int] = None) -> List[Event]:
        """Get a publisher's events, newest first."""
        query = "SELECT * FROM events WHERE publisher_id = ? ORDER BY created_at DESC, rowid DESC"
        params: tuple = (publisher_id,)
        if limit:
            query += " LIMIT ?"
            params = (publisher_id, limit)

        try:
            rows = self.db.execute_query(query, params)
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to load events for publisher {publisher_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return [Event.from_db_row(row) for row in rows]

    def count_events(self, publisher_id: Optional[int] = None) -> int:
        if publisher_id is None:
            row = self.db.execute_one("SELECT COUNT(*) FROM events")
        else:
            row = self.db.execute_one(
                "SELECT COUNT(*) FROM events WHERE publisher_id = ?", (publisher_id,)
            )
        return row[0] if row else 0
