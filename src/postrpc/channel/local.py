"""In-process channel: endpoints posting messages to each other on one event loop.

Each :class:`LocalEndpoint` behaves like a browsing context with an origin.
Posting copies the payload, checks the target origin pattern against the
receiver's origin, and schedules delivery on the running loop, so a send
never runs the receiver's handlers synchronously.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from postrpc.channel.base import Envelope, HandlerSet, origin_matches
from postrpc.errors import ChannelClosedError
from postrpc.protocol.constants import WILDCARD_ORIGIN

if TYPE_CHECKING:
    from postrpc.channel.base import MessageHandler, Subscription

logger = logging.getLogger(__name__)


class LocalEndpoint:
    """A message-receiving endpoint identified by object identity and origin."""

    def __init__(self, origin: str, *, name: str | None = None, latency: float = 0.0) -> None:
        self.origin = origin
        self.name = name or origin
        self.latency = latency
        self._handlers = HandlerSet()
        self._closed = False

    def __repr__(self) -> str:
        return f"LocalEndpoint(name={self.name!r}, origin={self.origin!r})"

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, handler: MessageHandler) -> Subscription:
        """Register *handler* for every message delivered to this endpoint."""
        return self._handlers.add(handler)

    def port_to(self, other: LocalEndpoint) -> LocalPort:
        """Return the handle this endpoint uses to post to *other*."""
        return LocalPort(sender=self, receiver=other)

    def channel_to(self, other: LocalEndpoint) -> LocalChannel:
        """Return a duplex channel from this endpoint to *other*."""
        return LocalChannel(self, other)

    def close(self) -> None:
        """Stop receiving; later posts to this endpoint raise ``ChannelClosedError``."""
        self._closed = True
        self._handlers.clear()

    def _schedule(self, envelope: Envelope) -> None:
        loop = asyncio.get_running_loop()
        if self.latency > 0:
            loop.call_later(self.latency, self._deliver, envelope)
        else:
            loop.call_soon(self._deliver, envelope)

    def _deliver(self, envelope: Envelope) -> None:
        if self._closed:
            return
        self._handlers.dispatch(envelope)


@dataclass(frozen=True, slots=True)
class LocalPort:
    """Handle for posting from *sender* to *receiver*.

    Two ports compare equal when they connect the same pair of endpoints in
    the same direction, which is how a client recognises replies from its peer.
    """

    sender: LocalEndpoint = field(repr=False)
    receiver: LocalEndpoint

    def post_message(self, data: Any, target_origin: str = WILDCARD_ORIGIN) -> None:
        if self.receiver.closed:
            msg = f"Endpoint {self.receiver.name!r} is closed"
            raise ChannelClosedError(msg)
        if not origin_matches(target_origin, self.receiver.origin):
            logger.debug(
                "Dropping message for %s: target origin %s does not match %s",
                self.receiver.name,
                target_origin,
                self.receiver.origin,
            )
            return
        envelope = Envelope(
            source=LocalPort(sender=self.receiver, receiver=self.sender),
            origin=self.sender.origin,
            data=copy.deepcopy(data),
        )
        self.receiver._schedule(envelope)


class LocalChannel:
    """Channel from a local endpoint to one remote endpoint."""

    def __init__(self, local: LocalEndpoint, remote: LocalEndpoint) -> None:
        self._local = local
        self._peer = local.port_to(remote)

    @property
    def peer(self) -> LocalPort:
        return self._peer

    @property
    def local(self) -> LocalEndpoint:
        return self._local

    def send(self, data: Any, target_origin: str = WILDCARD_ORIGIN) -> None:
        self._peer.post_message(data, target_origin)

    def subscribe(self, handler: MessageHandler) -> Subscription:
        return self._local.subscribe(handler)


__all__ = ["LocalChannel", "LocalEndpoint", "LocalPort"]
