"""
GeoPoll - Publisher Feed Poller
===============================

Background polling of geolocated event feeds from third-party publishers.

Main Components:
- Jobs: poll job state machine, pagination and retry policy
- Ingestion: single-page feed fetching over HTTP
- Storage: SQLite repositories for publishers and events
- Delivery: failure notifications to publisher contacts
- Configuration: environment variables with Pydantic validation
"""

__version__ = "1.0.0"
__description__ = "Publisher feed poller with pagination and bounded retries"

from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import GeoPollError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "GeoPollError",
]
