"""Wire contracts and constants for the postrpc request/reply protocol."""

from __future__ import annotations

from postrpc.protocol.constants import (
    HANDSHAKE_COMMAND,
    HANDSHAKE_ID,
    STATUS_ERROR,
    STATUS_OK,
    WILDCARD_ORIGIN,
)
from postrpc.protocol.contracts import ErrorPayload, RpcReply, RpcRequest

__all__ = [
    "HANDSHAKE_COMMAND",
    "HANDSHAKE_ID",
    "STATUS_ERROR",
    "STATUS_OK",
    "WILDCARD_ORIGIN",
    "ErrorPayload",
    "RpcReply",
    "RpcRequest",
]
