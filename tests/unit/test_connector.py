"""Unit tests for the connect handshake."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from postrpc.channel.base import Envelope
from postrpc.channel.local import LocalChannel, LocalEndpoint
from postrpc.client import ConnectionState
from postrpc.config import RpcConfig
from postrpc.connector import Connector, connect
from postrpc.dispatcher import Dispatcher, serve
from postrpc.errors import ConnectionTimeout
from postrpc.protocol.constants import HANDSHAKE_COMMAND, HANDSHAKE_ID
from postrpc.registry import MethodTable
from tests.helpers import FAST_CONFIG, Calculator, settle, wait_until

pytestmark = pytest.mark.unit


class FlakyChannel:
    """Local channel whose first *failures* sends raise."""

    def __init__(self, inner: LocalChannel, failures: int) -> None:
        self._inner = inner
        self.failures = failures
        self.sent = 0

    @property
    def peer(self) -> Any:
        return self._inner.peer

    def send(self, data: Any, target_origin: str = "*") -> None:
        self.sent += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("link down")
        self._inner.send(data, target_origin)

    def subscribe(self, handler: Any) -> Any:
        return self._inner.subscribe(handler)


def _record_handshakes(endpoint: LocalEndpoint) -> list[dict[str, Any]]:
    seen: list[dict[str, Any]] = []

    def _on_message(envelope: Envelope) -> None:
        if isinstance(envelope.data, dict) and envelope.data.get("command") == HANDSHAKE_COMMAND:
            seen.append(envelope.data)

    endpoint.subscribe(_on_message)
    return seen


async def test_ping_pong(client_endpoint: LocalEndpoint, server_endpoint: LocalEndpoint) -> None:
    table = MethodTable()
    table.register("ping", lambda: "pong")
    Dispatcher(object(), interface_name="Pinger", methods=table).listen(server_endpoint)

    client = await connect(
        client_endpoint.channel_to(server_endpoint),
        "Pinger",
        config=FAST_CONFIG,
    )

    assert await client.ping() == "pong"


async def test_handshake_request_shape(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    handshakes = _record_handshakes(server_endpoint)
    serve(Calculator(), server_endpoint, whitelist=["add"])

    await connect(client_endpoint.channel_to(server_endpoint), "Calculator", config=FAST_CONFIG)

    assert handshakes[0] == {
        "command": HANDSHAKE_COMMAND,
        "interfaceName": "Calculator",
        "id": HANDSHAKE_ID,
    }


async def test_timeout_raises_and_stops_polling(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    handshakes = _record_handshakes(server_endpoint)
    connector = Connector(
        client_endpoint.channel_to(server_endpoint),
        "Calculator",
        timeout=0.1,
        retry_interval=0.02,
        initial_delay=0.0,
    )

    with pytest.raises(ConnectionTimeout) as exc_info:
        await connector.connect()

    assert exc_info.value.interface_name == "Calculator"
    assert connector.state is ConnectionState.UNCONNECTED
    await settle()
    sent = len(handshakes)
    assert sent >= 2
    await asyncio.sleep(0.08)
    assert len(handshakes) == sent


async def test_late_server_is_found_by_retries(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    service = Calculator()
    connector = Connector(
        client_endpoint.channel_to(server_endpoint),
        "Calculator",
        config=FAST_CONFIG,
    )
    connecting = asyncio.create_task(connector.connect())

    await wait_until(lambda: connector.attempts >= 3, description="several handshake attempts")
    assert connector.state is ConnectionState.CONNECTING
    serve(service, server_endpoint, whitelist=["add"])
    client = await connecting

    assert connector.state is ConnectionState.CONNECTED
    assert await client.add(1, 1) == 2
    assert service.connections >= 1


async def test_send_failures_are_retried(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    serve(Calculator(), server_endpoint, whitelist=["add"])
    channel = FlakyChannel(client_endpoint.channel_to(server_endpoint), failures=2)

    client = await connect(channel, "Calculator", config=FAST_CONFIG)  # type: ignore[arg-type]

    assert channel.sent >= 3
    assert await client.add(2, 2) == 4


async def test_pinned_origin_mismatch_times_out(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    serve(Calculator(), server_endpoint, whitelist=["add"])

    with pytest.raises(ConnectionTimeout):
        await connect(
            client_endpoint.channel_to(server_endpoint),
            "Calculator",
            "https://not-the-widget.example",
            0.1,
            config=FAST_CONFIG,
        )


async def test_pinned_origin_match_connects(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    serve(Calculator(), server_endpoint, whitelist=["add"])

    client = await connect(
        client_endpoint.channel_to(server_endpoint),
        "Calculator",
        server_endpoint.origin,
        config=FAST_CONFIG,
    )

    assert client.target_origin == server_endpoint.origin
    assert await client.add(3, 4) == 7


async def test_interfaces_share_one_endpoint(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    serve(Calculator(), server_endpoint, interface_name="Left", whitelist=["add"])
    serve(Calculator(), server_endpoint, interface_name="Right", whitelist=["divide"])
    channel = client_endpoint.channel_to(server_endpoint)

    left, right = await asyncio.gather(
        connect(channel, "Left", config=FAST_CONFIG),
        connect(channel, "Right", config=FAST_CONFIG),
    )

    assert left.available_methods == ("add", HANDSHAKE_COMMAND)
    assert right.available_methods == ("divide", HANDSHAKE_COMMAND)
    assert await left.add(1, 2) == 3
    assert await right.divide(8, 2) == 4


async def test_malformed_interface_reply_is_ignored(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    def _bogus(envelope: Envelope) -> None:
        envelope.source.post_message(
            {"status": "OK", "result": "add", "interfaceName": "Calculator", "id": 0},
            envelope.origin,
        )

    server_endpoint.subscribe(_bogus)

    with pytest.raises(ConnectionTimeout):
        await connect(
            client_endpoint.channel_to(server_endpoint),
            "Calculator",
            timeout=0.1,
            config=FAST_CONFIG,
        )


async def test_second_connect_while_connecting_is_rejected(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    connector = Connector(
        client_endpoint.channel_to(server_endpoint),
        "Calculator",
        timeout=0.1,
        config=FAST_CONFIG,
    )
    first = asyncio.create_task(connector.connect())
    await settle()

    with pytest.raises(RuntimeError, match="Already connecting"):
        await connector.connect()
    with pytest.raises(ConnectionTimeout):
        await first


def test_timings_default_to_config() -> None:
    config = RpcConfig(
        connect_timeout_seconds=7.0,
        retry_interval_seconds=0.5,
        initial_delay_seconds=0.25,
    )
    endpoint = LocalEndpoint("a")
    connector = Connector(endpoint.channel_to(endpoint), "X", config=config)

    assert connector.timeout == 7.0
    assert connector.retry_interval == 0.5
    assert connector.initial_delay == 0.25
    assert Connector(endpoint.channel_to(endpoint), "X", timeout=1.0, config=config).timeout == 1.0
