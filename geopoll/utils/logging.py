"""
GeoPoll Logging Configuration
=============================

Logging setup for the poller. Every component logs through a named child of
the ``geopoll`` logger with a context adapter, so records carry the
component, and where known the publisher and job they concern.

Console output is colored for development; file output is always one JSON
object per line.
"""

import logging
import logging.handlers
import sys
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional

ROOT_LOGGER_NAME = "geopoll"

# Fields promoted to the top level of JSON records
CONTEXT_FIELDS = ("component", "publisher_id", "job_id")

# Attributes every LogRecord has; anything else came in through ``extra``
_STANDARD_RECORD_FIELDS = set(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _STANDARD_RECORD_FIELDS}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, context fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }

        extra = _extra_fields(record)
        for key in CONTEXT_FIELDS:
            if key in extra:
                log_data[key] = extra.pop(key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored single-line console output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        tags = ""
        publisher_id = getattr(record, "publisher_id", None)
        if publisher_id is not None:
            tags += f"[publisher {publisher_id}] "
        job_id = getattr(record, "job_id", None)
        if job_id:
            tags += f"[job {job_id}] "

        formatted = (
            f"{color}[{timestamp}] {record.levelname:8}{self.RESET} "
            f"{record.name} {tags}- {record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    structured: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Configure ``name`` with console and rotating file handlers.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file, no file output when empty
        console: Whether to log to stdout
        structured: JSON instead of colored console output
        max_file_size: Bytes before the log file rotates
        backup_count: Rotated files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Reconfiguring must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(StructuredFormatter() if structured else ColoredConsoleFormatter())
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter that merges a fixed context into every record."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "LoggerAdapter":
        """New adapter with ``context`` added to this one's."""
        return LoggerAdapter(self.logger, {**self.extra, **context})


def get_logger_for_component(
    component_name: str,
    publisher_id: Optional[Any] = None,
    job_id: Optional[str] = None,
) -> LoggerAdapter:
    """Logger adapter for ``geopoll.<component_name>``.

    Args:
        component_name: Name of the component (e.g. 'fetcher', 'dispatcher')
        publisher_id: Publisher the records concern
        job_id: Poll job the records concern
    """
    context: Dict[str, Any] = {"component": component_name}
    if publisher_id is not None:
        context["publisher_id"] = publisher_id
    if job_id:
        context["job_id"] = job_id

    return LoggerAdapter(logging.getLogger(f"{ROOT_LOGGER_NAME}.{component_name}"), context)


def configure_application_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/geopoll.log",
    enable_console: bool = True,
    structured_logging: bool = False,
) -> None:
    """Configure application-wide logging from settings values."""
    setup_logger(
        name=ROOT_LOGGER_NAME,
        level=log_level,
        log_file=log_file,
        console=enable_console,
        structured=structured_logging,
    )

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


class PerformanceLogger:
    """Times a block and logs its duration.

    Failures are logged at DEBUG only: the exception still propagates and
    whoever handles it decides how loudly to report it.
    """

    def __init__(self, logger: logging.LoggerAdapter, operation: str, **context: Any):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.started: Optional[float] = None
        self.duration: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.started = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration = time.perf_counter() - self.started
        context = {**self.context, "duration_seconds": round(self.duration, 3)}

        if exc_type is None:
            self.logger.info(f"Completed {self.operation} in {self.duration:.3f}s", extra=context)
        else:
            context["error_type"] = exc_type.__name__
            self.logger.debug(f"Aborted {self.operation} after {self.duration:.3f}s: {exc_val}", extra=context)
