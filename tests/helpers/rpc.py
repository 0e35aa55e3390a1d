"""Shortcuts for wiring a dispatcher and a connected client over local endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from postrpc.config import RpcConfig
from postrpc.connector import connect
from postrpc.dispatcher import Dispatcher
from postrpc.ids import SequentialIdGenerator

if TYPE_CHECKING:
    from collections.abc import Iterable

    from postrpc.channel.local import LocalEndpoint
    from postrpc.client import ClientProxy

FAST_CONFIG = RpcConfig(
    connect_timeout_seconds=1.0,
    retry_interval_seconds=0.02,
    initial_delay_seconds=0.0,
)


async def connect_local(
    service: Any,
    client_endpoint: LocalEndpoint,
    server_endpoint: LocalEndpoint,
    *,
    whitelist: Iterable[str] | None = None,
    access_control: bool = False,
    target_origin: str = "*",
) -> tuple[ClientProxy, Dispatcher]:
    """Serve *service* on *server_endpoint* and connect to it from *client_endpoint*."""
    dispatcher = Dispatcher(service, whitelist=whitelist, access_control=access_control)
    dispatcher.listen(server_endpoint)
    client = await connect(
        client_endpoint.channel_to(server_endpoint),
        dispatcher.interface_name,
        target_origin,
        config=FAST_CONFIG,
        id_generator=SequentialIdGenerator(),
    )
    return client, dispatcher
