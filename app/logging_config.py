"""
Structured logging configuration with request and sequence tracking.

All logging uses structured JSON format for production and a human-readable
format for development. Context such as request_id, session_id and
sequence_id is attached through ``extra=`` and rendered by both formatters.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from app.config import settings

_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "lineno", "funcName", "created", "msecs", "relativeCreated", "taskName",
    "thread", "threadName", "processName", "process", "message",
    "exc_info", "exc_text", "stack_info",
}


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON formatter for production logging.
    Includes context ids, timestamp, and all log fields in JSON format.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Context ids and any extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        parts = [
            f"[{record.levelname:8s}]",
            f"{record.module}:{record.lineno}",
        ]

        if hasattr(record, "request_id"):
            parts.append(f"req:{str(record.request_id)[:8]}")

        if hasattr(record, "session_id"):
            parts.append(f"session:{str(record.session_id)[:12]}")

        if hasattr(record, "sequence_id") and record.sequence_id:
            parts.append(f"seq:{record.sequence_id}")

        parts.append(record.getMessage())

        if record.exc_info:
            parts.append(f"\n{self.formatException(record.exc_info)}")

        return " | ".join(parts)


def setup_logging(use_json: Optional[bool] = None) -> None:
    """
    Set up application logging.

    Args:
        use_json: If True, use JSON formatting. If None, follow settings.log_format.
    """
    if use_json is None:
        use_json = settings.log_format == "json"

    if use_json:
        formatter = StructuredFormatter()
    else:
        formatter = HumanReadableFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    root_logger.handlers.clear()

    # stderr keeps stdout free for transports that frame messages on it
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set levels for third-party loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
