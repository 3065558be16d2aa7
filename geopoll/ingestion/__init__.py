"""
GeoPoll Ingestion
=================

Fetching of publisher feed pages.
"""

from .fetcher import Fetcher, FetchResult

__all__ = [
    "Fetcher",
    "FetchResult",
]
