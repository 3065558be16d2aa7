"""
Publisher Update
================

Ingests a page of features for a publisher: stores events that have not
been seen before and reports which ones were new. Feature content is
forwarded as-is; no validation beyond what is needed to key the event.
"""

import sqlite3
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..database.connection import DatabaseConnection
from ..database.models import Event, Publisher
from ..storage.event_repository import EventRepository
from ..storage.publisher_repository import PublisherRepository
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import IngestError


class PublisherUpdate:
    """Persists new events for one publisher."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.event_repo = EventRepository(db_connection)
        self.publisher_repo = PublisherRepository(db_connection)
        self.logger = get_logger_for_component("publisher_update")

    def call(self, features: Sequence[Dict[str, Any]], publisher: Publisher) -> List[Event]:
        """Store features as events and return the newly created ones.

        Raises:
            IngestError: If a feature cannot be mapped or storage fails
        """
        try:
            events = [Event.from_feature(feature, publisher.id) for feature in features]
        except (AttributeError, TypeError, PydanticValidationError) as e:
            raise IngestError(
                f"Malformed feature for publisher {publisher.id}: {e}",
                publisher_id=publisher.id,
            ) from e

        try:
            with self.db.transaction() as conn:
                new_events = self.event_repo.insert_new_events(events, conn)
                self.publisher_repo.touch_publisher(publisher.id, conn=conn)
        except sqlite3.Error as e:
            raise IngestError(
                f"Failed to save events for publisher {publisher.id}: {e}",
                publisher_id=publisher.id,
            ) from e

        self.logger.info(
            f"Ingested {len(features)} features for publisher {publisher.id}: "
            f"{len(new_events)} new",
            extra={"publisher_id": publisher.id, "new_events": len(new_events)},
        )
        return new_events

    __call__ = call
