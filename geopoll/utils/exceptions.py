"""
GeoPoll Custom Exceptions
=========================

Exception hierarchy for the publisher polling system with error codes
and context information.

Errors raised while a poll job runs (lookup, fetch, ingestion) propagate to
the job dispatcher unchanged so they consume a retry. Notification errors are
local to the exhaustion path and are never re-raised into the dispatcher.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_ERROR = "D006"

    # Fetch errors (F001-F099)
    FETCH_INVALID_URL = "F001"
    FETCH_TIMEOUT = "F002"
    FETCH_PARSE_ERROR = "F003"
    FETCH_NETWORK_ERROR = "F004"
    FETCH_HTTP_STATUS = "F005"

    # Ingestion errors (I001-I099)
    INGEST_FAILED = "I001"

    # Resource errors (R001-R099)
    RESOURCE_NOT_FOUND = "R002"

    # Job errors (J001-J099)
    JOB_INVALID_TRANSITION = "J001"

    # Notification errors (N001-N099)
    NOTIFICATION_FAILED = "N001"
    NOTIFICATION_CONFIG_MISSING = "N002"


class GeoPollError(Exception):
    """Base exception for all GeoPoll errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize GeoPoll error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether retrying may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(GeoPollError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class DatabaseError(GeoPollError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Database operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class NotFoundError(GeoPollError):
    """A requested record does not exist."""

    def __init__(self, message: str, resource: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if resource:
            context["resource"] = resource

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.RESOURCE_NOT_FOUND),
            context=context,
            user_message=kwargs.get("user_message", "Requested record not found"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class PublisherNotFoundError(NotFoundError):
    """Publisher id does not resolve to a stored publisher."""

    def __init__(self, publisher_id: Any, **kwargs):
        context = kwargs.pop("context", {})
        context["publisher_id"] = publisher_id
        self.publisher_id = publisher_id

        super().__init__(
            f"Publisher {publisher_id} not found",
            resource="publisher",
            context=context,
            **kwargs,
        )


class FetchError(GeoPollError):
    """HTTP transport, status or decoding failure while fetching a feed page."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        publisher_id: Optional[Any] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.get("context", {})
        if url:
            context["url"] = url
        if publisher_id is not None:
            context["publisher_id"] = publisher_id
        if status_code is not None:
            context["status_code"] = status_code
        self.url = url
        self.status_code = status_code

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FETCH_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get("user_message", f"Feed fetch failed: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class IngestError(GeoPollError):
    """Persistence failure while saving fetched events."""

    def __init__(self, message: str, publisher_id: Optional[Any] = None, **kwargs):
        context = kwargs.get("context", {})
        if publisher_id is not None:
            context["publisher_id"] = publisher_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.INGEST_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Event ingestion failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class NotificationError(GeoPollError):
    """Mail transport failure on the exhaustion notification path."""

    def __init__(self, message: str, recipient: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if recipient:
            context["recipient"] = recipient

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.NOTIFICATION_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Notification delivery failed"),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class InvalidTransitionError(GeoPollError):
    """A job state change that the state machine does not allow."""

    def __init__(self, current_state: Any, target_state: Any, **kwargs):
        super().__init__(
            message=f"Illegal job transition {current_state} -> {target_state}",
            error_code=ErrorCode.JOB_INVALID_TRANSITION,
            context={"from": str(current_state), "to": str(target_state)},
            **kwargs,
        )

