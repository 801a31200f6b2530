"""Run-scoped logging helpers for graph and node execution.

Provides:
- Run ID generation (unique per top-level Graph.run() call)
- Logging utility functions producing one greppable line per event

Log Format:
    [<identifier>] event: key=value, key=value (duration)

Examples:
    [qa] graph_start: start=Summarize, run_id=20251228_143022_x7k
    [qa] step_start: node=Summarize
    [qa] transition: source=Summarize, action=short, target=Output
    [qa] step_retry: node=Fetch, attempt=1, max_attempts=3, delay_ms=200
    [qa] graph_complete: steps=2, exit_action=done (0.4s)
"""

from __future__ import annotations

import logging
import random
import string
import time
from typing import Any

logger = logging.getLogger("synaptic.run")


def generate_run_id() -> str:
    """Generate a unique run ID.

    Format: YYYYMMDD_HHMMSS_xxx
    - Timestamp at second precision
    - 3-char random suffix to avoid collision

    Returns:
        Run ID string like "20251228_143022_x7k"
    """
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=3))
    return f"{timestamp}_{suffix}"


def truncate(value: Any, max_length: int = 100) -> str:
    """Truncate a value for logging.

    Args:
        value: Value to truncate.
        max_length: Maximum length before truncation.

    Returns:
        Truncated string with length indicator if truncated.
    """
    s = str(value)
    if len(s) <= max_length:
        return s
    return f"{s[:max_length]}... ({len(s)} chars)"


def _format(identifier: str, event: str, kwargs: dict[str, Any], suffix: str = "") -> str:
    kv_pairs = ", ".join(f"{k}={truncate(v)}" for k, v in kwargs.items() if v is not None)
    if kv_pairs:
        msg = f"[{identifier}] {event}: {kv_pairs}"
    else:
        msg = f"[{identifier}] {event}"
    return f"{msg} {suffix}" if suffix else msg


def log_start(
    log: logging.Logger | None,
    identifier: str,
    event: str,
    **kwargs: Any,
) -> None:
    """Log a start event at debug level.

    Args:
        log: Logger to use. If None, this is a no-op.
        identifier: Primary identifier (graph id).
        event: Event name (e.g., "graph_start", "step_start").
        **kwargs: Additional key=value pairs to log. None values are skipped.
    """
    if log is None:
        return
    log.debug(_format(identifier, event, kwargs))


def log_complete(
    log: logging.Logger | None,
    identifier: str,
    event: str,
    duration_s: float,
    **kwargs: Any,
) -> None:
    """Log a completion event with duration at debug level.

    Args:
        log: Logger to use. If None, this is a no-op.
        identifier: Primary identifier.
        event: Event name (e.g., "graph_complete", "step_complete").
        duration_s: Duration in seconds.
        **kwargs: Additional key=value pairs to log.
    """
    if log is None:
        return
    log.debug(_format(identifier, event, kwargs, f"({duration_s:.1f}s)"))


def log_error(
    log: logging.Logger | None,
    identifier: str,
    event: str,
    error: str | BaseException,
    **kwargs: Any,
) -> None:
    """Log an error event.

    Args:
        log: Logger to use. If None, this is a no-op.
        identifier: Primary identifier.
        event: Event name (e.g., "step_failed", "graph_failed").
        error: Error message or exception.
        **kwargs: Additional key=value pairs to log.
    """
    if log is None:
        return
    kwargs["error"] = truncate(str(error), max_length=200)
    log.error(_format(identifier, event, kwargs))


def log_warning(
    log: logging.Logger | None,
    identifier: str,
    event: str,
    **kwargs: Any,
) -> None:
    """Log a warning event.

    Args:
        log: Logger to use. If None, this is a no-op.
        identifier: Primary identifier.
        event: Event name (e.g., "step_retry", "decision_default").
        **kwargs: Additional key=value pairs to log.
    """
    if log is None:
        return
    log.warning(_format(identifier, event, kwargs))


def log_debug(
    log: logging.Logger | None,
    identifier: str,
    event: str,
    **kwargs: Any,
) -> None:
    """Log a debug event.

    Args:
        log: Logger to use. If None, this is a no-op.
        identifier: Primary identifier.
        event: Event name (e.g., "transition").
        **kwargs: Additional key=value pairs to log.
    """
    if log is None:
        return
    log.debug(_format(identifier, event, kwargs))
