"""Logging setup with an in-memory ring buffer of recent records.

The buffer keeps the last ``MAX_LOG_LINES`` records emitted through Python's
logging module so that dropped messages, unknown replies and handshake
retries can be inspected after the fact (``postrpc serve --debug`` dumps it
on shutdown).
"""

from __future__ import annotations

import logging
import sys
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from postrpc.limits import MAX_LOG_MESSAGE_LENGTH

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import TextIO


@dataclass(slots=True)
class LogEntry:
    """A captured log entry."""

    group: str  # Level name (DEBUG, INFO, WARNING, ERROR, etc.)
    logger_name: str
    message: str
    timestamp: float


# Global log buffer (ring buffer)
MAX_LOG_LINES = 2000
log_buffer: deque[LogEntry] = deque(maxlen=MAX_LOG_LINES)

PACKAGE_LOGGER = "postrpc"


class DebugLogHandler(logging.Handler):
    """Logging handler that captures logs to the debug buffer."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if len(msg) > MAX_LOG_MESSAGE_LENGTH:
                msg = msg[:MAX_LOG_MESSAGE_LENGTH] + "... [truncated]"
            log_buffer.append(
                LogEntry(
                    group=record.levelname,
                    logger_name=record.name,
                    message=msg,
                    timestamp=record.created,
                )
            )
        except Exception:
            self.handleError(record)


_debug_handler: DebugLogHandler | None = None


def setup_debug_logging() -> DebugLogHandler:
    """Attach the ring buffer handler to the package logger.

    This is idempotent - calling it multiple times returns the same handler.
    """
    global _debug_handler

    if _debug_handler is None:
        _debug_handler = DebugLogHandler(level=logging.DEBUG)
        _debug_handler.setFormatter(logging.Formatter("%(message)s"))
        logging.getLogger(PACKAGE_LOGGER).addHandler(_debug_handler)
    return _debug_handler


def configure_logging(level: str | int = "WARNING", *, stream: TextIO | None = None) -> None:
    """Log package records at *level* to *stream* (stderr by default) and the buffer."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    if not any(getattr(h, "_postrpc_console", False) for h in package_logger.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s", "%H:%M:%S")
        )
        handler._postrpc_console = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)
    setup_debug_logging()


def clear_log_buffer() -> None:
    """Clear the log buffer."""
    log_buffer.clear()


def format_entries(entries: Iterable[LogEntry] | None = None) -> list[str]:
    """Render buffered entries as ``time [LEVEL] logger: message`` lines."""
    lines: list[str] = []
    for entry in log_buffer if entries is None else entries:
        ts = datetime.fromtimestamp(entry.timestamp).strftime("%H:%M:%S.%f")[:-3]
        lines.append(f"{ts} [{entry.group}] {entry.logger_name}: {entry.message}")
    return lines


__all__ = [
    "LogEntry",
    "DebugLogHandler",
    "clear_log_buffer",
    "configure_logging",
    "format_entries",
    "log_buffer",
    "setup_debug_logging",
]
