"""Channel contracts: message ports, inboxes and subscription handles.

A *port* is a handle to a remote endpoint that messages can be posted to.
An *inbox* delivers every message arriving at the local endpoint, tagged with
the port of the sender and the sender's origin.  A *channel* bundles both for
one peer: ``channel.peer`` is where requests go, and ``channel.subscribe``
sees the replies (plus any unrelated traffic sharing the endpoint).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from postrpc.protocol.constants import WILDCARD_ORIGIN

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Envelope:
    """A delivered message.

    Attributes:
        source: Port that addresses the sender; replies are posted to it.
        origin: Origin string of the sender.
        data: The decoded message payload.
    """

    source: MessagePort
    origin: str
    data: Any


type MessageHandler = Callable[[Envelope], None]


@runtime_checkable
class MessagePort(Protocol):
    """Handle to a remote endpoint."""

    def post_message(self, data: Any, target_origin: str = WILDCARD_ORIGIN) -> None:
        """Send *data* if the receiver's origin matches *target_origin*.

        Delivery is fire-and-forget; a mismatching origin drops the message
        silently.  Raises ``ChannelClosedError`` when the port is closed.
        """
        ...


@runtime_checkable
class Inbox(Protocol):
    """Source of incoming messages for the local endpoint."""

    def subscribe(self, handler: MessageHandler) -> Subscription:
        """Register *handler* for every arriving message."""
        ...


@runtime_checkable
class Channel(Inbox, Protocol):
    """Duplex view of one peer: send to it and subscribe to arriving messages."""

    @property
    def peer(self) -> MessagePort:
        """Port identifying the remote endpoint."""
        ...

    def send(self, data: Any, target_origin: str = WILDCARD_ORIGIN) -> None:
        """Post *data* to :attr:`peer`."""
        ...


class Subscription:
    """Handle for a registered message handler.

    Closing the subscription removes the handler; closing twice is a no-op.
    Usable as a context manager for scoped acquisition.
    """

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe: Callable[[], None] | None = unsubscribe

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def close(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class HandlerSet:
    """Ordered set of handlers shared by the inbox implementations."""

    def __init__(self) -> None:
        self._handlers: list[MessageHandler] = []

    def __len__(self) -> int:
        return len(self._handlers)

    def add(self, handler: MessageHandler) -> Subscription:
        self._handlers.append(handler)

        def _remove() -> None:
            self._handlers = [h for h in self._handlers if h is not handler]

        return Subscription(_remove)

    def clear(self) -> None:
        self._handlers.clear()

    def dispatch(self, envelope: Envelope) -> None:
        """Invoke every handler with *envelope*; one failing handler does not stop the rest."""
        # Copy so handlers may unsubscribe while being dispatched.
        for handler in list(self._handlers):
            try:
                handler(envelope)
            except Exception:
                logger.exception("Message handler %r failed", handler)


def origin_matches(pattern: str, origin: str) -> bool:
    """Whether *origin* satisfies *pattern* (``"*"`` matches any origin)."""
    return pattern == WILDCARD_ORIGIN or pattern == origin


__all__ = [
    "Channel",
    "Envelope",
    "HandlerSet",
    "Inbox",
    "MessageHandler",
    "MessagePort",
    "Subscription",
    "origin_matches",
]
