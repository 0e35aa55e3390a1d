"""Timing defaults for the handshake - no circular dependencies."""

from __future__ import annotations

CONNECT_TIMEOUT_SECONDS: float = 30.0
"""How long ``connect()`` keeps polling before raising ``ConnectionTimeout``."""

HANDSHAKE_RETRY_INTERVAL_SECONDS: float = 1.0
HANDSHAKE_INITIAL_DELAY_SECONDS: float = 0.1

MAX_LOG_MESSAGE_LENGTH: int = 2000

SHUTDOWN_DRAIN_SECONDS: float = 5.0
"""How long `serve` waits for awaited results to be replied to before stopping."""

__all__ = [
    "CONNECT_TIMEOUT_SECONDS",
    "HANDSHAKE_INITIAL_DELAY_SECONDS",
    "HANDSHAKE_RETRY_INTERVAL_SECONDS",
    "MAX_LOG_MESSAGE_LENGTH",
    "SHUTDOWN_DRAIN_SECONDS",
]
