"""Serve a Python object over a stream transport."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from postrpc.channel.stream import StreamListener
from postrpc.cli.options import instantiate, load_target, select_transport
from postrpc.config import RpcConfig
from postrpc.debug_log import configure_logging, format_entries
from postrpc.dispatcher import Dispatcher
from postrpc.limits import SHUTDOWN_DRAIN_SECONDS

if TYPE_CHECKING:
    from postrpc.channel.transports import Transport


async def _shutdown(
    listener: StreamListener,
    dispatcher: Dispatcher,
    drain_timeout: float = SHUTDOWN_DRAIN_SECONDS,
) -> None:
    """Flush in-flight replies, then close connections and the dispatcher."""
    try:
        await asyncio.wait_for(dispatcher.drain(), drain_timeout)
    except TimeoutError:
        click.secho(
            f"Dropping {dispatcher.in_flight} unfinished call(s) after {drain_timeout}s",
            fg="yellow",
        )
    await listener.stop()
    dispatcher.close()


async def _serve_forever(dispatcher: Dispatcher, transport: Transport) -> None:
    listener = StreamListener(dispatcher.listen, transport=transport)
    handle = await listener.start()
    click.secho(f"Serving {dispatcher.interface_name} on {handle.origin}", fg="green", bold=True)
    click.echo(f"  Methods: {', '.join(dispatcher.whitelist)}")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
    try:
        await stop.wait()
    finally:
        await _shutdown(listener, dispatcher)
        click.echo("Server stopped.")


@click.command()
@click.argument("target")
@click.option("--socket", "socket_path", default=None, help="Unix socket path to listen on.")
@click.option("--tcp", "use_tcp", is_flag=True, help="Listen on TCP loopback instead.")
@click.option("--host", default=None, help="TCP host (default 127.0.0.1).")
@click.option("--port", type=int, default=None, help="TCP port (default: OS picks).")
@click.option("--interface", "interface_name", default=None, help="Interface name to serve.")
@click.option(
    "--method",
    "methods",
    multiple=True,
    help="Whitelisted method; repeat for several. Default: introspect TARGET.",
)
@click.option(
    "--access-control/--no-access-control",
    default=None,
    help="Pass caller identity as first argument of every method.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: user config dir).",
)
@click.option("--debug", is_flag=True, help="Log at DEBUG and dump the log buffer on exit.")
def serve(
    target: str,
    socket_path: str | None,
    use_tcp: bool,
    host: str | None,
    port: int | None,
    interface_name: str | None,
    methods: tuple[str, ...],
    access_control: bool | None,
    config_path: Path | None,
    debug: bool,
) -> None:
    """Serve TARGET (``module:Class``, factory or instance) until interrupted."""
    config = RpcConfig.load(config_path)
    configure_logging("DEBUG" if debug else config.log_level)

    service = instantiate(load_target(target))
    dispatcher = Dispatcher(
        service,
        interface_name=interface_name,
        whitelist=methods or None,
        access_control=config.access_control if access_control is None else access_control,
    )
    transport = select_transport(
        socket_path=socket_path,
        use_tcp=use_tcp,
        host=host,
        port=port,
        config=config,
    )
    try:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(_serve_forever(dispatcher, transport))
    finally:
        if debug:
            for line in format_entries():
                click.echo(line, err=True)
