"""Inspect and initialise the postrpc config file."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import tomlkit

from postrpc.config import RpcConfig
from postrpc.paths import get_config_path


@click.group()
def config() -> None:
    """Manage postrpc configuration."""


@config.command()
@click.option(
    "--path",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: user config dir).",
)
def show(config_path: Path | None) -> None:
    """Show the effective configuration (file plus environment overrides)."""
    path = config_path or get_config_path()
    effective = RpcConfig.load(path)
    status = "" if path.exists() else " (not found, using defaults)"
    click.echo(f"# {path}{status}")
    values = {k: v for k, v in effective.model_dump().items() if v is not None}
    click.echo(tomlkit.dumps({"rpc": values}).rstrip())


@config.command()
@click.option(
    "--path",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: user config dir).",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
def init(config_path: Path | None, force: bool) -> None:
    """Write a config file with default values."""
    path = config_path or get_config_path()
    if path.exists() and not force:
        click.secho(f"Config already exists: {path}", fg="yellow")
        click.echo("Use --force to overwrite.")
        raise SystemExit(1)
    written = asyncio.run(RpcConfig().save(path))
    click.secho(f"Wrote {written}", fg="green")
