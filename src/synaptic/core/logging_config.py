"""Centralized logging configuration for synaptic.

Engine modules only create loggers; nothing is configured on import. The
application (or the CLI) calls configure_logging once at startup.

Usage:
    from synaptic.core.logging_config import configure_logging, get_logger

    configure_logging(level="DEBUG")
    logger = get_logger(__name__)

Environment Variables:
    SYNAPTIC_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    SYNAPTIC_LOG_FORMAT: Output format ("text" or "json")
    SYNAPTIC_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TEXT_FORMAT_WITH_MS = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys() | {"message", "asctime"}
)

_configured = False


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    One object per line:
    {
        "timestamp": "2025-12-28T14:30:00.123456",
        "level": "DEBUG",
        "logger": "synaptic.run",
        "message": "[qa] step_start: node=Summarize",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str | None = None,
    format: Literal["text", "json"] | None = None,
    file_path: str | None = None,
    include_ms: bool = True,
    force: bool = False,
) -> None:
    """Configure the root logger.

    Subsequent calls are ignored unless force=True.

    Args:
        level: Log level. Defaults to SYNAPTIC_LOG_LEVEL or "WARNING".
        format: Output format. Defaults to SYNAPTIC_LOG_FORMAT or "text".
        file_path: Optional file path. Defaults to SYNAPTIC_LOG_FILE.
        include_ms: Include milliseconds in timestamp.
        force: Force reconfiguration even if already configured.

    Raises:
        ValueError: If level or format is not recognized.
    """
    global _configured
    if _configured and not force:
        return

    level = (level or os.environ.get("SYNAPTIC_LOG_LEVEL", "WARNING")).upper()
    format = format or os.environ.get("SYNAPTIC_LOG_FORMAT", "text")  # type: ignore[assignment]
    file_path = file_path or os.environ.get("SYNAPTIC_LOG_FILE")

    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}; expected one of {', '.join(LOG_LEVELS)}")
    if format not in ("text", "json"):
        raise ValueError(f"Unknown log format {format!r}; expected 'text' or 'json'")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        fmt = TEXT_FORMAT_WITH_MS if include_ms else TEXT_FORMAT
        formatter = logging.Formatter(fmt, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (typically __name__)."""
    return logging.getLogger(name)


def set_level(level: str, logger_name: str | None = None) -> None:
    """Set log level for a specific logger or the root logger."""
    logging.getLogger(logger_name).setLevel(getattr(logging, level.upper()))
