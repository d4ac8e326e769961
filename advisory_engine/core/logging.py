"""Structured logging for the advisory engine.

Records are rendered as ``key=value`` pairs. Context fields identify what a
line is about: the document and chunk for pipeline work, the sync category
and queued operation for sync work.
"""

import logging
import sys
from typing import Any

# Promoted to top-level keys, in this order, when present on a record
CONTEXT_FIELDS = ("document_id", "chunk_index", "stage", "category", "operation_id")


class StructuredFormatter(logging.Formatter):
    """Formats records as key=value pairs, context fields first."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        line = " ".join(f"{k}={v}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _level_for_env() -> int:
    try:
        from advisory_engine.core.config import get_settings

        return logging.DEBUG if get_settings().ADVISORY_ENV == "dev" else logging.INFO
    except Exception:
        # Settings unavailable (e.g. missing env in scripts)
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_env())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with context fields.

    Keys in ``CONTEXT_FIELDS`` (document_id, chunk_index, stage, category,
    operation_id) become top-level fields; anything else is appended as
    extra data.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context and extra fields
    """
    extra: dict[str, Any] = {key: kwargs.pop(key) for key in CONTEXT_FIELDS if key in kwargs}
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
