"""Client side: stubs for the advertised methods and the pending-call table."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from postrpc.channel.base import origin_matches
from postrpc.errors import ClientClosedError, UnknownCommand, UnknownReply, error_from_payload
from postrpc.ids import RandomIdGenerator
from postrpc.protocol.constants import HANDSHAKE_ID, WILDCARD_ORIGIN
from postrpc.protocol.contracts import RpcReply, RpcRequest

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from postrpc.channel.base import Channel, Envelope
    from postrpc.ids import IdGenerator

logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    """Lifecycle of a connection: no automatic transition back to CONNECTING."""

    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(slots=True)
class PendingCall:
    """A sent request waiting for the reply with the same id."""

    id: int
    command: str
    future: asyncio.Future[Any]


type RemoteMethod = Callable[..., asyncio.Future[Any]]


class ClientProxy:
    """Proxy for a remote interface, normally created by :func:`postrpc.connect`.

    Every advertised method is available in :attr:`methods` and, unless it
    collides with a proxy attribute such as ``close``, as an attribute::

        client = await connect(channel, "Calculator")
        assert await client.add(1, 2) == 3
        assert await client.methods["add"](1, 2) == 3

    Calls carry no timeout; a call stays pending until its reply arrives or
    the proxy is closed, which rejects it with :class:`ClientClosedError`.
    """

    def __init__(
        self,
        channel: Channel,
        interface_name: str,
        methods: Iterable[str],
        *,
        target_origin: str = WILDCARD_ORIGIN,
        id_generator: IdGenerator | None = None,
    ) -> None:
        self._channel = channel
        self._target = channel.peer
        self._interface_name = interface_name
        self._target_origin = target_origin
        self._ids = id_generator or RandomIdGenerator()
        self._pending: dict[int, PendingCall] = {}
        self._state = ConnectionState.CONNECTED
        self.available_methods: tuple[str, ...] = tuple(dict.fromkeys(methods))
        self.methods: Mapping[str, RemoteMethod] = MappingProxyType(
            {name: self._make_stub(name) for name in self.available_methods}
        )
        self._subscription = channel.subscribe(self._receive)

    def __repr__(self) -> str:
        return (
            f"ClientProxy(interface={self._interface_name!r}, state={self._state.value}, "
            f"methods={list(self.available_methods)!r})"
        )

    def __getattr__(self, name: str) -> RemoteMethod:
        # Only reached when regular attribute lookup fails.
        methods = self.__dict__.get("methods")
        if methods is not None and name in methods:
            return methods[name]
        interface = self.__dict__.get("_interface_name", "?")
        msg = f"Remote interface {interface!r} has no method {name!r}"
        raise AttributeError(msg)

    async def __aenter__(self) -> ClientProxy:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.close()

    @property
    def interface_name(self) -> str:
        return self._interface_name

    @property
    def target_origin(self) -> str:
        return self._target_origin

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def pending_ids(self) -> frozenset[int]:
        """Ids of calls still awaiting a reply."""
        return frozenset(self._pending)

    def invoke(self, command: str, *args: Any) -> asyncio.Future[Any]:
        """Send *command* with *args* and return the future of its reply.

        The request is posted before this method returns, so calls are sent in
        invocation order even when their futures are awaited later.

        Raises:
            ClientClosedError: If the proxy has been closed.
            UnknownCommand: If *command* was not advertised by the server.
        """
        if self._state is ConnectionState.CLOSED:
            raise ClientClosedError(self._interface_name)
        if command not in self.methods:
            raise UnknownCommand(command)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        call_id = self._ids.next_id(self._pending)
        request = RpcRequest(
            command=command,
            interface_name=self._interface_name,
            args=list(args),
            id=call_id,
        )
        self._pending[call_id] = PendingCall(id=call_id, command=command, future=future)
        try:
            # Replies may come from any origin the filter accepts; requests go anywhere.
            self._channel.send(request.to_wire(), WILDCARD_ORIGIN)
        except Exception as exc:
            del self._pending[call_id]
            future.set_exception(exc)
        return future

    def close(self) -> None:
        """Stop listening for replies and reject every pending call."""
        if self._state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED
        self._subscription.close()
        pending, self._pending = self._pending, {}
        for call in pending.values():
            if not call.future.done():
                call.future.set_exception(ClientClosedError(self._interface_name))
        if pending:
            logger.debug("Rejected %d pending call(s) on close", len(pending))

    def _make_stub(self, name: str) -> RemoteMethod:
        def stub(*args: Any) -> asyncio.Future[Any]:
            return self.invoke(name, *args)

        stub.__name__ = name
        stub.__qualname__ = f"{self._interface_name}.{name}"
        return stub

    def _accepts(self, envelope: Envelope) -> bool:
        data = envelope.data
        return (
            envelope.source == self._target
            and isinstance(data, dict)
            and bool(data.get("status"))
            and data.get("interfaceName") == self._interface_name
            and origin_matches(self._target_origin, envelope.origin)
        )

    def _receive(self, envelope: Envelope) -> None:
        if not self._accepts(envelope):
            return
        try:
            reply = RpcReply.model_validate(envelope.data)
        except ValidationError as exc:
            logger.warning("Discarding malformed reply for %s: %s", self._interface_name, exc)
            return

        call = self._pending.pop(reply.id, None)
        if call is None:
            if reply.id == HANDSHAKE_ID:
                logger.debug("Late handshake reply for %s", self._interface_name)
            else:
                logger.warning("%s for %s", UnknownReply(reply.id), self._interface_name)
            return
        if call.future.done():
            # The caller cancelled; the entry is still consumed by its reply.
            return
        if reply.ok:
            call.future.set_result(reply.result)
        else:
            call.future.set_exception(error_from_payload(reply.error_payload()))


__all__ = ["ClientProxy", "ConnectionState", "PendingCall", "RemoteMethod"]
