"""Root CLI command registration."""

from __future__ import annotations

import click

from postrpc.version import get_postrpc_version

from .call import call
from .config import config
from .methods import methods
from .serve import serve


@click.group()
@click.version_option(get_postrpc_version(), prog_name="postrpc")
def cli() -> None:
    """Request/reply RPC over message channels."""


cli.add_command(serve)
cli.add_command(call)
cli.add_command(methods)
cli.add_command(config)
