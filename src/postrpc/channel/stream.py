"""JSON-lines channels over asyncio streams.

A :class:`StreamChannel` wraps one connected socket.  The channel is its own
peer port: messages it delivers name it as their source, so replies posted
to ``envelope.source`` go back over the same connection.  Framing is one
compact JSON document per line.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any

from postrpc.channel.base import Envelope, HandlerSet, origin_matches
from postrpc.channel.transports import DefaultTransport, UnixSocketTransport, format_origin
from postrpc.errors import ChannelClosedError
from postrpc.protocol.constants import MAX_LINE_BYTES, WILDCARD_ORIGIN

if TYPE_CHECKING:
    from collections.abc import Callable

    from postrpc.channel.base import MessageHandler, Subscription
    from postrpc.channel.transports import ServerHandle, Transport

    ChannelCallback = Callable[["StreamChannel"], "Subscription | None"]

logger = logging.getLogger(__name__)


class StreamChannel:
    """Channel over a connected ``StreamReader``/``StreamWriter`` pair.

    Attributes:
        origin: Origin label of the remote side, attached to every delivered message.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        origin: str,
    ) -> None:
        self.origin = origin
        self._reader = reader
        self._writer = writer
        self._handlers = HandlerSet()
        self._read_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"StreamChannel(origin={self.origin!r})"

    @property
    def peer(self) -> StreamChannel:
        return self

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set() or self._writer.is_closing()

    def start(self) -> None:
        """Begin reading lines and delivering them to subscribers."""
        if self._read_task is None:
            self._read_task = asyncio.create_task(self._read_loop())

    def subscribe(self, handler: MessageHandler) -> Subscription:
        return self._handlers.add(handler)

    def send(self, data: Any, target_origin: str = WILDCARD_ORIGIN) -> None:
        self.post_message(data, target_origin)

    def post_message(self, data: Any, target_origin: str = WILDCARD_ORIGIN) -> None:
        """Write *data* as one JSON line without waiting for the buffer to drain.

        Raises:
            ChannelClosedError: If the connection is closed.
            TypeError: If *data* is not JSON serialisable.
            ValueError: If the encoded line exceeds ``MAX_LINE_BYTES``.
        """
        if self.is_closed:
            msg = f"Stream channel to {self.origin} is closed"
            raise ChannelClosedError(msg)
        if not origin_matches(target_origin, self.origin):
            logger.debug("Dropping message: target origin %s != %s", target_origin, self.origin)
            return
        line = json.dumps(data, separators=(",", ":")).encode("utf-8")
        if len(line) > MAX_LINE_BYTES:
            msg = f"Message exceeds {MAX_LINE_BYTES} bytes"
            raise ValueError(msg)
        self._writer.write(line + b"\n")

    async def close(self) -> None:
        """Stop reading and close the connection."""
        if self._read_task is not None and self._read_task is not asyncio.current_task():
            self._read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._read_task
        self._handlers.clear()
        self._closed.set()
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    async def wait_closed(self) -> None:
        """Wait until the remote side disconnects or :meth:`close` is called."""
        await self._closed.wait()

    async def _read_loop(self) -> None:
        try:
            while True:
                try:
                    raw = await self._reader.readline()
                except ValueError:
                    # readline() has already discarded the overlong data.
                    logger.warning("Dropping oversized message from %s", self.origin)
                    continue
                if not raw:
                    break  # Peer disconnected
                self._handle_line(raw)
        except (ConnectionError, OSError):
            logger.debug("Stream to %s disconnected", self.origin)
        finally:
            self._closed.set()

    def _handle_line(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Discarding invalid JSON line from %s", self.origin)
            return
        self._handlers.dispatch(Envelope(source=self, origin=self.origin, data=data))


async def open_stream_channel(
    transport: Transport | None = None,
    *,
    address: str | None = None,
    port: int | None = None,
) -> StreamChannel:
    """Connect with *transport* and return a started channel to the server."""
    transport = transport or DefaultTransport()
    reader, writer = await transport.connect(address, port)
    if transport.transport_type == "tcp":
        host, bound_port = writer.get_extra_info("peername")[:2]
        origin = format_origin("tcp", host, bound_port)
    else:
        origin = format_origin("socket", address or transport.path)
    channel = StreamChannel(reader, writer, origin=origin)
    channel.start()
    return channel


class StreamListener:
    """Accepts connections and hands each one to *on_channel* as a started channel.

    If *on_channel* returns a subscription, it is closed when the connection
    ends.

    Usage::

        dispatcher = Dispatcher(Service())
        listener = StreamListener(dispatcher.listen, transport=UnixSocketTransport(path))
        await listener.start()
        ...
        await listener.stop()
    """

    def __init__(
        self,
        on_channel: ChannelCallback,
        *,
        transport: Transport | None = None,
    ) -> None:
        self._on_channel = on_channel
        self._transport = transport or DefaultTransport()
        self._handle: ServerHandle | None = None
        self._channels: set[StreamChannel] = set()

    @property
    def handle(self) -> ServerHandle | None:
        """The server handle, available after ``start()``."""
        return self._handle

    @property
    def channels(self) -> frozenset[StreamChannel]:
        return frozenset(self._channels)

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    async def start(self) -> ServerHandle:
        if self._handle is not None:
            msg = "Listener is already running"
            raise RuntimeError(msg)
        self._handle = await self._transport.start_server(self._client_connected)
        return self._handle

    async def stop(self) -> None:
        """Close every open connection and stop listening."""
        if self._handle is None:
            return
        for channel in list(self._channels):
            await channel.close()
        if self._handle.close is not None:
            await self._handle.close()
        self._handle = None

    async def _client_connected(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        peer = writer.get_extra_info("peername")
        if isinstance(self._transport, UnixSocketTransport):
            # Unix peers are unnamed; tell connections apart by writer identity.
            origin = format_origin("socket", f"{self._transport.path}#{id(writer):x}")
        else:
            host, port = peer[:2] if peer else ("unknown", 0)
            origin = format_origin("tcp", host, port)
        channel = StreamChannel(reader, writer, origin=origin)
        self._channels.add(channel)
        logger.debug("Client connected: %s", origin)
        subscription = self._on_channel(channel)
        channel.start()
        try:
            await channel.wait_closed()
        finally:
            if subscription is not None:
                subscription.close()
            self._channels.discard(channel)
            await channel.close()
            logger.debug("Client disconnected: %s", origin)


__all__ = ["StreamChannel", "StreamListener", "open_stream_channel"]
