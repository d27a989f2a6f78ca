"""Structured logging configuration for Artemis."""

import logging
import sys
from typing import Any

# Correlation fields lifted out of ``extra`` onto the record
CONTEXT_FIELDS = ("session_id", "turn_id")


class StructuredFormatter(logging.Formatter):
    """Renders records as ``key=value`` pairs on one line."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                fields[name] = value
        fields.update(getattr(record, "extra_data", None) or {})
        if record.exc_info:
            fields["exc"] = self.formatException(record.exc_info)

        return " ".join(f"{k}={v}" for k, v in fields.items())


def _level_for_environment() -> int:
    try:
        from artemis.core.config import get_settings

        return logging.DEBUG if get_settings().ARTEMIS_ENV == "dev" else logging.INFO
    except Exception:
        # Client-only installs run without server settings
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing structured lines to stdout
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_environment())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **fields: session_id / turn_id become record attributes, the rest extra_data
    """
    extra: dict[str, Any] = {name: fields.pop(name) for name in CONTEXT_FIELDS if name in fields}
    extra["extra_data"] = fields
    logger.log(level, msg, extra=extra)
