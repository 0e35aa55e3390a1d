"""List the methods a target would expose without a whitelist."""

from __future__ import annotations

import click

from postrpc.cli.options import load_target
from postrpc.registry import callable_methods


@click.command()
@click.argument("target")
def methods(target: str) -> None:
    """Print the externally callable methods of TARGET (``module:Class``)."""
    names = callable_methods(load_target(target))
    if not names:
        click.secho("No callable methods found.", fg="yellow")
        return
    for name in names:
        click.echo(name)
