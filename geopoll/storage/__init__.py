"""
GeoPoll Storage Layer
=====================

Repository pattern implementations for publishers and ingested events.
"""

from .publisher_repository import PublisherRepository
from .event_repository import EventRepository

__all__ = [
    "PublisherRepository",
    "EventRepository",
]
