"""
Structured Logging for the Enrichment Services

Both services (the series enricher worker and the request CLI) log to stdout,
either as one JSON object per line (production, log shippers) or as plain
text (local development).

The configured logger is created once at bootstrap and handed to every
component that logs: the pipeline, the store adapters, the lookup client and
the Kafka consumer. Components only fall back to ``logging.getLogger`` when
nothing is injected (unit tests, ad-hoc scripts).

EXAMPLE OUTPUT:
{
  "timestamp": "2025-03-02T09:12:44.018Z",
  "level": "INFO",
  "service": "series-enricher",
  "logger": "src.enricher.pipeline",
  "correlation_id": "Supernatural",
  "message": "Series request processed",
  "extra": {"series_id": "tt0460681", "episodes": 327}
}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Attributes every LogRecord carries; anything else was passed through ``extra``
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "correlation_id",
    }
)


# ==============================================================================
# FORMATTERS
# ==============================================================================


class JSONFormatter(logging.Formatter):
    """
    Render a LogRecord as a single-line JSON document.

    Fields: timestamp (ISO 8601, UTC, millisecond precision), level, service,
    logger, message, plus ``correlation_id`` and an ``extra`` object when the
    caller supplied them. Exceptions are rendered into ``exception``.
    """

    def __init__(self, service_name: str = "series-enricher", include_extra: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "correlation_id"):
            log_data["correlation_id"] = record.correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra_fields = {
                k: v
                for k, v in record.__dict__.items()
                if k not in _STANDARD_ATTRS and not k.startswith("_")
            }
            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)

    @staticmethod
    def _format_timestamp(created: float) -> str:
        """Format a record timestamp as ``2025-03-02T09:12:44.018Z``."""
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class PlainTextFormatter(logging.Formatter):
    """
    Human-readable formatter for local development.

    Format: [2025-03-02 09:12:44] INFO [series-enricher] Series request processed
    """

    def __init__(self, service_name: str = "series-enricher"):
        super().__init__(
            fmt=f"[%(asctime)s] %(levelname)s [{service_name}] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


# ==============================================================================
# LOGGER SETUP
# ==============================================================================


def setup_logger(
    name: str,
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> logging.Logger:
    """
    Create (or return the already configured) stdout logger for a service.

    Args:
        name: Logger name, usually the bootstrap module's ``__name__``
        service_name: Service identifier written into every record
            (e.g. "series-enricher", "series-requester")
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: "json" or "text"

    Returns:
        Configured logging.Logger instance

    Example:
        >>> logger = setup_logger(__name__, "series-enricher", "DEBUG", "text")
        >>> logger.info("Worker started", extra={"topic": "popcorn-planner.tvserie-retrieve"})
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Calling twice must not stack handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)

    if log_format.lower() == "json":
        formatter: logging.Formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = PlainTextFormatter(service_name=service_name)

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def child_logger(parent: logging.Logger, suffix: str) -> logging.Logger:
    """
    Derive a component logger from the injected service logger.

    Children propagate to the parent's handlers, so a component logs through
    the service's formatter while keeping its own name in ``logger``.
    """
    return parent.getChild(suffix)


# ==============================================================================
# CORRELATION ID ADAPTER
# ==============================================================================


class CorrelationAdapter(logging.LoggerAdapter):
    """
    Logger adapter stamping a ``correlation_id`` onto every record.

    The enricher uses the requested series name as the correlation id so all
    log lines of one message (lookup, upsert, insert, publish, commit) can be
    grouped together.

    Example:
        >>> request_logger = CorrelationAdapter(logger, {"correlation_id": "Supernatural"})
        >>> request_logger.info("Resolving series")
    """

    def process(self, msg: str, kwargs: dict) -> tuple:
        extra = dict(kwargs.get("extra") or {})

        if "correlation_id" in self.extra:
            extra["correlation_id"] = self.extra["correlation_id"]

        kwargs["extra"] = extra
        return msg, kwargs
