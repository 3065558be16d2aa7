"""
GeoPoll Delivery
================

Outbound notifications to publisher contacts.
"""

from .email_notifier import EmailNotifier, NotificationResult

__all__ = [
    "EmailNotifier",
    "NotificationResult",
]
