"""Structured logging for certdedupe.

Application modules log through the standard library
(``logging.getLogger(__name__)``); this module decides how those records are
rendered. The audit trail lives separately in :mod:`certdedupe.security.audit`.
"""

import json
import logging
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_local = threading.local()

# Attributes every LogRecord carries; anything else arrived through ``extra``
_STANDARD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def _current_context() -> Dict[str, Any]:
    return getattr(_local, "fields", {})


def mask_email(value: str) -> str:
    """Keep the first character and the domain: ``j***@example.com``."""
    local, sep, domain = value.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


class StructuredFormatter(logging.Formatter):
    """Renders each record as one JSON object per line.

    Secret-looking fields are replaced outright; recipient emails are masked
    so log lines stay correlatable by domain without naming the recipient.
    """

    SECRET_MARKERS = ("password", "secret", "token", "api_key", "authorization")

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_current_context())

        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRIBUTES:
                entry[key] = self._scrub(key, value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)

    def _scrub(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if any(marker in lowered for marker in self.SECRET_MARKERS):
            return "[REDACTED]"
        if "email" in lowered and isinstance(value, str):
            return mask_email(value)
        return value


def setup_logging(
    format: str = "json",
    level: str = "INFO",
    log_file: Optional[str] = None
) -> None:
    """Route all records to stderr, and to ``log_file`` when given.

    Args:
        format: "json" for :class:`StructuredFormatter`, anything else for plain text
        level: Root logging level name
        log_file: Optional file that receives the same records
    """
    formatter = StructuredFormatter() if format == "json" else logging.Formatter(TEXT_FORMAT)

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_performance(logger_name: str, operation: str, duration_ms: float, **fields) -> None:
    """Debug-level timing line with ``duration_ms`` and any extra fields attached."""
    fields["duration_ms"] = duration_ms
    get_logger(logger_name).debug(
        f"{operation} completed in {duration_ms:.2f}ms", extra=fields
    )


@contextmanager
def log_context(**fields):
    """Attach fields to every structured line logged by this thread.

    Example:
        with log_context(issuer_id="issuer-1"):
            logger.info("Checking candidate")
    """
    previous = _current_context()
    _local.fields = {**previous, **fields}
    try:
        yield
    finally:
        _local.fields = previous


class Timer:
    """Wall-clock timer for ``with`` blocks; ``duration_ms`` is set on exit."""

    def __init__(self):
        self.duration_ms: Optional[float] = None
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc):
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        return False
