"""Message channels: contracts plus in-process and socket stream implementations."""

from __future__ import annotations

from postrpc.channel.base import (
    Channel,
    Envelope,
    Inbox,
    MessageHandler,
    MessagePort,
    Subscription,
    origin_matches,
)
from postrpc.channel.local import LocalChannel, LocalEndpoint, LocalPort
from postrpc.channel.stream import StreamChannel, StreamListener, open_stream_channel
from postrpc.channel.transports import (
    DefaultTransport,
    ServerHandle,
    TCPLoopbackTransport,
    UnixSocketTransport,
)

__all__ = [
    "Channel",
    "DefaultTransport",
    "Envelope",
    "Inbox",
    "LocalChannel",
    "LocalEndpoint",
    "LocalPort",
    "MessageHandler",
    "MessagePort",
    "ServerHandle",
    "StreamChannel",
    "StreamListener",
    "Subscription",
    "TCPLoopbackTransport",
    "UnixSocketTransport",
    "open_stream_channel",
    "origin_matches",
]
