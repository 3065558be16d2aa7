"""
GeoPoll Services
================

Collaborators used by poll jobs: HTTP connection construction and event
ingestion.
"""

from .connection_builder import ConnectionBuilder, JsonConnection
from .publisher_update import PublisherUpdate

__all__ = [
    "ConnectionBuilder",
    "JsonConnection",
    "PublisherUpdate",
]
