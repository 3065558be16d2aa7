"""
Publisher Repository
====================

Repository pattern implementation for publisher records.
"""

from datetime import datetime, timezone
from typing import List, Optional
import sqlite3

from ..database.connection import DatabaseConnection
from ..database.models import Publisher
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode, PublisherNotFoundError


class PublisherRepository:
    """Repository for reading and writing publishers."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize publisher repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("publisher_repository")

    def create_publisher(self, publisher: Publisher) -> int:
        """Create a new publisher.

        Args:
            publisher: Publisher to store (its id is ignored)

        Returns:
            New publisher id

        Raises:
            DatabaseError: If the insert fails, including duplicate endpoints
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO publishers (
                        title, endpoint, email, description, active, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                    (
                        publisher.title,
                        publisher.endpoint,
                        publisher.email,
                        publisher.description,
                        publisher.active,
                        (publisher.created_at or datetime.now(timezone.utc)).isoformat(),
                    ),
                )
                publisher_id = cursor.lastrowid
                conn.commit()

                self.logger.info(f"Created publisher {publisher_id}: {publisher.endpoint}")
                return publisher_id

        except sqlite3.IntegrityError as e:
            raise DatabaseError(
                f"Publisher endpoint already exists: {publisher.endpoint}",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
                recoverable=False,
            ) from e
        except sqlite3.Error as e:
            self.logger.error(f"Failed to create publisher: {e}")
            raise DatabaseError(
                f"Failed to create publisher: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_publisher(self, publisher_id: int) -> Optional[Publisher]:
        """Get publisher by id, or None when it does not exist.

        Raises:
            DatabaseError: If the lookup itself fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM publishers WHERE id = ?", (publisher_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to load publisher {publisher_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return Publisher.from_db_row(row) if row else None

    def get_publisher_or_raise(self, publisher_id: int) -> Publisher:
        """Get publisher by id.

        Raises:
            PublisherNotFoundError: If no publisher has this id
        """
        publisher = self.get_publisher(publisher_id)
        if publisher is None:
            raise PublisherNotFoundError(publisher_id)
        return publisher

    def get_active_publishers(self) -> List[Publisher]:
        """Get all publishers that should be polled, oldest first."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM publishers WHERE active = ? ORDER BY id",
                    (True,),
                ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to list publishers: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return [Publisher.from_db_row(row) for row in rows]

    def get_all_publishers(self) -> List[Publisher]:
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute("SELECT * FROM publishers ORDER BY id").fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to list publishers: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return [Publisher.from_db_row(row) for row in rows]

    def touch_publisher(self, publisher_id: int, conn: Optional[sqlite3.Connection] = None) -> None:
        """Record a successful ingestion time for the publisher."""
        now = datetime.now(timezone.utc).isoformat()
        query = "UPDATE publishers SET updated_at = ? WHERE id = ?"

        if conn is not None:
            conn.execute(query, (now, publisher_id))
            return

        self.db.execute_update(query, (now, publisher_id))
