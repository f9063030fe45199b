"""Structured logging for analysis runs.

Every record is rendered as ``key=value`` pairs. Fields passed through
``extra=`` (``run_id``, ``stage``, counts, samples) are appended after the
standard fields so a single analysis run can be followed by grepping its
``run_id``.
"""

import logging
import sys
from typing import Any

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "extra_data"}


class StructuredFormatter(logging.Formatter):
    """Key=value formatter that keeps run and stage context up front."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
        }

        for key in ("run_id", "stage"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        log_data["message"] = record.getMessage()

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        line = " ".join(f"{k}={v}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the structured stdout handler attached.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from analysis_engine.core.config import get_settings

            settings = get_settings()
            if settings.ANALYSIS_ENGINE_ENV == "dev":
                logger.setLevel(logging.DEBUG)
            else:
                logger.setLevel(logging.INFO)
        except Exception:
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with run context fields.

    ``run_id`` and ``stage`` become first-class record attributes, all other
    keyword arguments are appended as extra fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context fields (run_id, stage, counts...)
    """
    extra: dict[str, Any] = {}
    for key in ("run_id", "stage"):
        if key in kwargs:
            extra[key] = kwargs.pop(key)
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
