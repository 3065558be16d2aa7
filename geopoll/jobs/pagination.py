"""
Pagination decisions for poll jobs.

A next page is followed only when the current page produced new events,
the Next-Page URL stays on the current page's host, and the chain has not
reached the page ceiling.
"""

from typing import Optional
from urllib.parse import urlparse

from .models import PollJob

MAX_PAGE_NUMBER = 10
NEXT_PAGE_HEADER = "Next-Page"


def _hostname(url: str) -> Optional[str]:
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def valid_next_page(next_page: Optional[str], current_page: str) -> bool:
    """True if ``next_page`` is present and shares ``current_page``'s host.

    Only the host is compared; scheme, port and path may differ.
    """
    if next_page is None or not next_page.strip():
        return False

    next_host = _hostname(next_page.strip())
    current_host = _hostname(current_page)
    if not next_host or not current_host:
        return False

    return next_host == current_host


def next_page_job(
    new_event_count: int,
    next_page: Optional[str],
    current_url: str,
    page_number: int,
    publisher_id: int,
    max_page_number: int = MAX_PAGE_NUMBER,
) -> Optional[PollJob]:
    """Descriptor for the follow-up job, or None if pagination stops here."""
    if new_event_count <= 0:
        return None
    if page_number >= max_page_number:
        return None
    if not valid_next_page(next_page, current_url):
        return None

    return PollJob(publisher_id, next_page.strip(), page_number + 1)
