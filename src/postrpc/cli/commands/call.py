"""Invoke one method on a served interface."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from postrpc.channel.stream import open_stream_channel
from postrpc.cli.options import parse_argument, select_transport
from postrpc.config import RpcConfig
from postrpc.connector import connect
from postrpc.debug_log import configure_logging
from postrpc.errors import ConnectionTimeout, RpcError

if TYPE_CHECKING:
    from postrpc.channel.transports import Transport


async def _call(
    transport: Transport,
    *,
    address: str | None,
    port: int | None,
    interface_name: str,
    target_origin: str,
    timeout: float | None,
    config: RpcConfig,
    method: str,
    args: list[Any],
) -> Any:
    channel = await open_stream_channel(transport, address=address, port=port)
    try:
        client = await connect(
            channel,
            interface_name,
            target_origin,
            timeout,
            config=config,
        )
        async with client:
            return await client.invoke(method, *args)
    finally:
        await channel.close()


@click.command()
@click.argument("method")
@click.argument("args", nargs=-1)
@click.option("--interface", "interface_name", required=True, help="Interface name to call.")
@click.option("--socket", "socket_path", default=None, help="Unix socket path of the server.")
@click.option("--tcp", "use_tcp", is_flag=True, help="Connect over TCP loopback.")
@click.option("--host", default=None, help="TCP host (default 127.0.0.1).")
@click.option("--port", type=int, default=None, help="TCP port of the server.")
@click.option("--origin", "target_origin", default="*", help="Only accept replies from ORIGIN.")
@click.option("--timeout", type=float, default=None, help="Connect timeout in seconds.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: user config dir).",
)
def call(
    method: str,
    args: tuple[str, ...],
    interface_name: str,
    socket_path: str | None,
    use_tcp: bool,
    host: str | None,
    port: int | None,
    target_origin: str,
    timeout: float | None,
    config_path: Path | None,
) -> None:
    """Call METHOD with ARGS (parsed as JSON, else taken as strings) and print the result."""
    config = RpcConfig.load(config_path)
    configure_logging(config.log_level)
    transport = select_transport(
        socket_path=socket_path,
        use_tcp=use_tcp,
        host=host,
        port=port,
        config=config,
    )
    try:
        result = asyncio.run(
            _call(
                transport,
                address=socket_path if transport.transport_type == "socket" else host,
                port=port,
                interface_name=interface_name,
                target_origin=target_origin,
                timeout=timeout,
                config=config,
                method=method,
                args=[parse_argument(arg) for arg in args],
            )
        )
    except ConnectionTimeout as exc:
        click.secho(str(exc), fg="red", err=True)
        sys.exit(2)
    except (ConnectionError, OSError) as exc:
        click.secho(f"Cannot reach server: {exc}", fg="red", err=True)
        sys.exit(2)
    except RpcError as exc:
        click.secho(f"Error: {exc.message}", fg="red", err=True)
        if exc.code is not None:
            click.echo(f"  Code: {exc.code}", err=True)
        sys.exit(1)
    click.echo(json.dumps(result, indent=2, default=str))
