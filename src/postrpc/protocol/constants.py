"""Shared wire constants for the postrpc protocol."""

from __future__ import annotations

HANDSHAKE_COMMAND = "getRpcInterface"
HANDSHAKE_ID = 0
WILDCARD_ORIGIN = "*"

STATUS_OK = "OK"
STATUS_ERROR = "error"

MAX_LINE_BYTES = 4 * 1024 * 1024  # 4 MiB per JSON line (without framing overhead)
STREAM_LIMIT_BYTES = MAX_LINE_BYTES + 1  # Include trailing newline separator.

__all__ = [
    "HANDSHAKE_COMMAND",
    "HANDSHAKE_ID",
    "MAX_LINE_BYTES",
    "STATUS_ERROR",
    "STATUS_OK",
    "STREAM_LIMIT_BYTES",
    "WILDCARD_ORIGIN",
]
