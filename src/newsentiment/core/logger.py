from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from rich.logging import RichHandler

# Correlation ID shared by every log line of one sentiment request
_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Record attributes copied into structured output when present
STRUCTURED_FIELDS = (
    "ticker",
    "source",
    "url",
    "event_type",
    "attempt",
    "error",
    "error_type",
)

# Libraries that are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "asyncio", "playwright", "redis")


def get_correlation_id() -> str:
    """Get the current correlation ID."""
    return _correlation_id.get()


def set_correlation_id(cid: Optional[str] = None) -> str:
    """Set a correlation ID for request tracing.

    Args:
        cid: Correlation ID to set. If None, generates a short UUID.

    Returns:
        The correlation ID that was set.
    """
    if cid is None:
        cid = str(uuid.uuid4())[:8]
    _correlation_id.set(cid)
    return cid


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        cid = getattr(record, "correlation_id", "") or get_correlation_id()
        if cid:
            log_data["correlation_id"] = cid

        for key in STRUCTURED_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ContextFilter(logging.Filter):
    """Stamps the active correlation ID onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Emit JSON lines instead of rich console output
        log_file: Optional path that also receives JSON lines

    Examples:
        # Interactive use
        setup_logging("DEBUG")

        # Containers / log shipping
        setup_logging("INFO", json_output=True)
    """
    if os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes"):
        json_output = True

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers = []

    if json_output:
        console_handler: logging.Handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler = RichHandler(
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.addFilter(ContextFilter())
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter())
        file_handler.addFilter(ContextFilter())
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``newsentiment``."""
    if name == "newsentiment" or name.startswith("newsentiment."):
        return logging.getLogger(name)
    return logging.getLogger(f"newsentiment.{name}")


class LogContext:
    """Context manager that adds fields to every record created inside it.

    Example:
        with LogContext(ticker="RELIANCE", source="nse"):
            log.info("Crawling")  # record carries ticker and source
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._old_factory = None

    def __enter__(self) -> "LogContext":
        self._old_factory = logging.getLogRecordFactory()
        old_factory = self._old_factory

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            for key, value in self.fields.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, *args) -> None:
        if self._old_factory:
            logging.setLogRecordFactory(self._old_factory)


def _emit(logger: logging.Logger, level: int, message: str, fields: dict) -> None:
    record = logger.makeRecord(
        logger.name,
        level,
        "(newsentiment)",
        0,
        message,
        args=(),
        exc_info=None,
    )
    for key, value in fields.items():
        setattr(record, key, value)
    logger.handle(record)


def log_crawl_event(
    logger: logging.Logger,
    event_type: str,
    source: str,
    **kwargs: Any,
) -> None:
    """Log a crawl milestone with standard fields.

    Args:
        logger: Logger instance
        event_type: Milestone name (search_loaded, article_parsed, source_skipped, ...)
        source: Source name
        **kwargs: Extra fields (ticker, url, count, ...)
    """
    parts = [f"[{event_type.upper()}]", source]
    for key, value in kwargs.items():
        if value is not None:
            parts.append(f"{key}={value}")

    fields = {"source": source, "event_type": event_type}
    fields.update(kwargs)
    _emit(logger, logging.INFO, " ".join(parts), fields)


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    error: Exception,
    level: int = logging.ERROR,
    **context: Any,
) -> None:
    """Log an error together with its type and any context fields."""
    fields = {"error": str(error), "error_type": type(error).__name__}
    fields.update(context)
    _emit(logger, level, f"{message}: {error}", fields)
