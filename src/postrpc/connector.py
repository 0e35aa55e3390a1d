"""Client-side handshake: poll the server for its interface until it answers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from postrpc.channel.base import origin_matches
from postrpc.client import ClientProxy, ConnectionState
from postrpc.config import RpcConfig
from postrpc.errors import ConnectionTimeout
from postrpc.protocol.constants import STATUS_OK, WILDCARD_ORIGIN
from postrpc.protocol.contracts import RpcRequest

if TYPE_CHECKING:
    from postrpc.channel.base import Channel, Envelope
    from postrpc.ids import IdGenerator

logger = logging.getLogger(__name__)


class Connector:
    """Drives the handshake for one interface on one channel.

    The interface request is sent after ``initial_delay`` seconds and then
    every ``retry_interval`` seconds.  The first ``OK`` reply from the peer
    with the right interface name (and origin, when pinned) yields a
    :class:`ClientProxy`; if none arrives within ``timeout`` seconds,
    :class:`ConnectionTimeout` is raised and polling stops.

    Send failures while polling are logged and do not stop the retries.
    """

    def __init__(
        self,
        channel: Channel,
        interface_name: str,
        *,
        target_origin: str = WILDCARD_ORIGIN,
        timeout: float | None = None,
        retry_interval: float | None = None,
        initial_delay: float | None = None,
        config: RpcConfig | None = None,
        id_generator: IdGenerator | None = None,
    ) -> None:
        cfg = config or RpcConfig()
        self._channel = channel
        self._interface_name = interface_name
        self._target_origin = target_origin
        self.timeout = cfg.connect_timeout_seconds if timeout is None else timeout
        self.retry_interval = (
            cfg.retry_interval_seconds if retry_interval is None else retry_interval
        )
        self.initial_delay = cfg.initial_delay_seconds if initial_delay is None else initial_delay
        self._id_generator = id_generator
        self._state = ConnectionState.UNCONNECTED
        self.attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self) -> ClientProxy:
        """Run the handshake and return a connected proxy.

        Raises:
            ConnectionTimeout: If the server does not answer in time.
            RuntimeError: If a handshake is already in progress.
        """
        if self._state is ConnectionState.CONNECTING:
            msg = f"Already connecting to {self._interface_name!r}"
            raise RuntimeError(msg)

        interface: asyncio.Future[list[str]] = asyncio.get_running_loop().create_future()

        def on_message(envelope: Envelope) -> None:
            if interface.done() or not self._is_interface_reply(envelope):
                return
            result = envelope.data.get("result")
            if not isinstance(result, list) or not all(isinstance(n, str) for n in result):
                logger.warning("Ignoring malformed interface from %s", envelope.origin)
                return
            interface.set_result(result)

        self._state = ConnectionState.CONNECTING
        self.attempts = 0
        subscription = self._channel.subscribe(on_message)
        poller = asyncio.create_task(self._poll())
        try:
            methods = await asyncio.wait_for(interface, timeout=self.timeout)
        except TimeoutError:
            self._state = ConnectionState.UNCONNECTED
            logger.warning(
                "Connecting to %s timed out after %d attempt(s)",
                self._interface_name,
                self.attempts,
            )
            raise ConnectionTimeout(self._interface_name, self.timeout) from None
        except BaseException:
            self._state = ConnectionState.UNCONNECTED
            raise
        finally:
            subscription.close()
            poller.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poller

        self._state = ConnectionState.CONNECTED
        logger.debug("Connected to %s: %s", self._interface_name, methods)
        return ClientProxy(
            self._channel,
            self._interface_name,
            methods,
            target_origin=self._target_origin,
            id_generator=self._id_generator,
        )

    def _is_interface_reply(self, envelope: Envelope) -> bool:
        data = envelope.data
        return (
            envelope.source == self._channel.peer
            and isinstance(data, dict)
            and data.get("status") == STATUS_OK
            and data.get("interfaceName") == self._interface_name
            and origin_matches(self._target_origin, envelope.origin)
        )

    async def _poll(self) -> None:
        await asyncio.sleep(self.initial_delay)
        request = RpcRequest.handshake(self._interface_name).to_wire()
        while True:
            self.attempts += 1
            try:
                self._channel.send(request, self._target_origin)
            except Exception as exc:
                logger.warning(
                    "Handshake send for %s failed (attempt %d): %s",
                    self._interface_name,
                    self.attempts,
                    exc,
                )
            await asyncio.sleep(self.retry_interval)


async def connect(
    channel: Channel,
    interface_name: str,
    target_origin: str = WILDCARD_ORIGIN,
    timeout: float | None = None,
    *,
    config: RpcConfig | None = None,
    id_generator: IdGenerator | None = None,
) -> ClientProxy:
    """Connect to *interface_name* across *channel*; see :class:`Connector`."""
    connector = Connector(
        channel,
        interface_name,
        target_origin=target_origin,
        timeout=timeout,
        config=config,
        id_generator=id_generator,
    )
    return await connector.connect()


__all__ = ["Connector", "connect"]
