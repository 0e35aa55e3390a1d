"""Caller identity injection seen end to end through a client proxy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from postrpc.dispatcher import CallerIdentity
from postrpc.errors import RemoteError
from postrpc.registry import RpcService
from tests.helpers import Greeter, connect_local

if TYPE_CHECKING:
    from postrpc.channel.local import LocalEndpoint

pytestmark = pytest.mark.unit


class Vault(RpcService):
    def __init__(self, allowed_origin: str) -> None:
        self.allowed_origin = allowed_origin

    def read(self, caller: CallerIdentity, key: str) -> str:
        if caller.calling_origin != self.allowed_origin:
            raise PermissionError(f"{caller.calling_origin} may not read {key}")
        return f"secret:{key}"

    def args_seen(self, *args: Any) -> int:
        return len(args)


async def test_caller_origin_is_first_argument(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    client, _ = await connect_local(
        Greeter(), client_endpoint, server_endpoint, access_control=True
    )

    assert await client.whoami() == client_endpoint.origin


async def test_service_can_deny_by_origin(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    client, _ = await connect_local(
        Vault("https://someone-else.example"),
        client_endpoint,
        server_endpoint,
        access_control=True,
    )

    with pytest.raises(RemoteError, match="may not read"):
        await client.read("k")


async def test_service_allows_matching_origin(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    client, _ = await connect_local(
        Vault(client_endpoint.origin),
        client_endpoint,
        server_endpoint,
        access_control=True,
    )

    assert await client.read("k") == "secret:k"


async def test_identity_is_added_only_when_enabled(
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
) -> None:
    client, dispatcher = await connect_local(
        Vault("x"), client_endpoint, server_endpoint, access_control=False
    )

    assert not dispatcher.access_control
    assert await client.args_seen(1, 2) == 2
