"""Logging configuration for the MSI Processor."""

import contextvars
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

# Context variable for storing the S3 URI of the record being processed
object_uri_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "object_uri", default=None
)

# Standard LogRecord attributes, everything else came in through extra={...}
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName",
    "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "getMessage", "taskName",
})


class JsonLogFormatter(logging.Formatter):
    """JSON formatter for CloudWatch Logs.

    Formats log records as single-line JSON objects so that CloudWatch Logs
    Insights can query the structured fields. Exceptions and tracebacks are
    included as strings within the JSON structure.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as single-line JSON.

        Args:
            record: Log record to format

        Returns:
            Single-line JSON string
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
        }

        object_uri = object_uri_context.get()
        if object_uri:
            log_entry["object_uri"] = object_uri

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
            log_entry["exception_type"] = record.exc_info[0].__name__ if record.exc_info[0] else "Unknown"
            log_entry["exception_message"] = str(record.exc_info[1]) if record.exc_info[1] else ""

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging(env: str = "cloud", log_level: str = "INFO") -> None:
    """Configure structured logging for the application.

    Uses JSON formatting outside of local development so Lambda and
    container log streams can be queried by field; local runs get a
    plain text format.

    Args:
        env: Deployment environment ("local" selects the text formatter)
        log_level: Root log level name
    """
    handler = logging.StreamHandler(sys.stdout)

    if env == "local":
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = JsonLogFormatter()

    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level.upper())
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # AWS SDK loggers stay at WARNING regardless of LOG_LEVEL
    for logger_name in ["boto3", "botocore", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
