"""Logging helpers shared across the resolver.

Keeps structured DEBUG traces cheap: callers guard expensive ``extra``
construction behind :func:`is_debug_enabled` and pass context fields through
:func:`extra_context`.
"""
from __future__ import annotations

import logging
import os
import re
import sys
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from constants import Constants

ENV_LOG_LEVEL = "DEPO_LOG_LEVEL"

_SENSITIVE_PARAMS = re.compile(r"(token|key|secret|password|signature|auth)", re.IGNORECASE)


def configure_logging(level: Optional[str] = None, quiet: bool = False) -> None:
    """Configure the root logger once for console output.

    Level precedence: explicit ``level`` argument, ``DEPO_LOG_LEVEL``, INFO.
    """
    level_name = (level or os.environ.get(ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level_value)
    if quiet:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        root.addHandler(logging.NullHandler())
        return
    if not any(getattr(h, "_depo_console", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        handler._depo_console = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for structured log records.

    None values are dropped so formatters only see populated fields.
    """
    return {k: v for k, v in fields.items() if v is not None}


def safe_url(url: str) -> str:
    """Redact credentials and secret-looking query parameters from ``url``."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    netloc = parts.netloc
    if "@" in netloc:
        netloc = "***@" + netloc.split("@", 1)[1]
    query = parts.query
    if query:
        pairs = [
            (k, "***" if _SENSITIVE_PARAMS.search(k) else v)
            for k, v in parse_qsl(query, keep_blank_values=True)
        ]
        query = urlencode(pairs)
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds so far, or the final duration once exited."""
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
