"""Logging configuration for repo_condenser.

Library modules log through ``logging.getLogger(__name__)`` and never
install handlers themselves. Applications (or tests) call
``configure_logging()`` once to attach a handler to the package logger,
choosing JSON lines or a compact human-readable format. The handler
carries a ``ContextFilter`` that stamps each record with the run's
correlation ID and elapsed time.

Usage:
    from repo_condenser.core.logging_config import configure_logging

    configure_logging(level="DEBUG", format="human")
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO, Union

from repo_condenser.core.context import (
    get_correlation_id,
    get_run_label,
    get_start_time,
)

__all__ = [
    "PACKAGE_LOGGER",
    "ContextFilter",
    "StructuredFormatter",
    "HumanReadableFormatter",
    "configure_logging",
    "get_logger",
]

PACKAGE_LOGGER = "repo_condenser"

# LogRecord attributes that are not user-supplied extras
_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "exc_info",
        "exc_text",
        "stack_info",
        "correlation_id",
        "run_label",
        "elapsed_ms",
    }
)


class ContextFilter(logging.Filter):
    """Inject run context (correlation_id, run_label, elapsed_ms) into records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        record.run_label = get_run_label() or "-"
        start_time = get_start_time()
        if start_time > 0:
            record.elapsed_ms = round((time.time() - start_time) * 1000, 2)
        else:
            record.elapsed_ms = 0.0
        return True


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter.

    Example output:
        {"timestamp":"2026-01-15T10:30:45.123+00:00","level":"INFO",
         "logger":"repo_condenser.core.condense.pipeline",
         "message":"Summarizing source unit src/app.py",
         "correlation_id":"run_a1b2c3d4e5f6","elapsed_ms":42.5}
    """

    def __init__(self, *, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
            "elapsed_ms": getattr(record, "elapsed_ms", 0.0),
        }
        run_label = getattr(record, "run_label", "-")
        if run_label and run_label != "-":
            log_entry["run_label"] = run_label

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra = {}
            for key, value in record.__dict__.items():
                if key in _STANDARD_ATTRS:
                    continue
                try:
                    json.dumps(value)
                    extra[key] = value
                except (TypeError, ValueError):
                    extra[key] = str(value)
            if extra:
                log_entry["extra"] = extra

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formats records as ``TIME [LEVEL] [correlation_id] logger: message``."""

    def __init__(self, *, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        if self.include_timestamp:
            parts.append(datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S"))
        parts.append(f"[{record.levelname}]")

        corr_id = getattr(record, "correlation_id", "-")
        if corr_id and corr_id != "-":
            parts.append(f"[{corr_id}]")

        logger_name = record.name
        if logger_name.startswith(PACKAGE_LOGGER + "."):
            logger_name = logger_name[len(PACKAGE_LOGGER) + 1 :]
        parts.append(f"{logger_name}:")
        parts.append(record.getMessage())

        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def configure_logging(
    *,
    level: Union[int, str] = logging.INFO,
    format: str = "structured",  # "structured" or "human"
    stream: Optional[TextIO] = None,
    add_context: bool = True,
) -> logging.Logger:
    """Configure the package logger.

    Replaces any handlers previously installed by this function.

    Args:
        level: Log level (default: INFO)
        format: Output format ("structured" for JSON, "human" for readable)
        stream: Output stream (default: stderr)
        add_context: Add ContextFilter for automatic context injection

    Returns:
        The configured ``repo_condenser`` logger

    Raises:
        ValueError: If format is not "structured" or "human"
    """
    if format not in ("structured", "human"):
        raise ValueError(f"Unknown log format: {format!r} (expected 'structured' or 'human')")
    if isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    if format == "structured":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())
    if add_context:
        handler.addFilter(ContextFilter())

    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``repo_condenser`` namespace."""
    if not name.startswith(PACKAGE_LOGGER):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
