"""Shared helpers for CLI commands: target loading and transport selection."""

from __future__ import annotations

import importlib
import inspect
import json
from typing import TYPE_CHECKING, Any

import click

from postrpc.channel.transports import TCPLoopbackTransport, UnixSocketTransport

if TYPE_CHECKING:
    from postrpc.channel.transports import Transport
    from postrpc.config import RpcConfig


def load_target(target: str) -> Any:
    """Resolve ``package.module:attribute`` to the object it names.

    Raises:
        click.BadParameter: If *target* is malformed or cannot be imported.
    """
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        msg = f"Expected MODULE:ATTRIBUTE, got {target!r}"
        raise click.BadParameter(msg, param_hint="TARGET")
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as exc:
        msg = f"Cannot import {module_name!r}: {exc}"
        raise click.BadParameter(msg, param_hint="TARGET") from exc
    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            msg = f"{module_name!r} has no attribute {attr_path!r}"
            raise click.BadParameter(msg, param_hint="TARGET") from exc
    return obj


def instantiate(target: Any) -> Any:
    """Classes and factories are called without arguments; instances are used as-is."""
    if isinstance(target, type) or inspect.isfunction(target):
        return target()
    return target


def parse_argument(raw: str) -> Any:
    """Parse a CLI argument as JSON, falling back to the literal string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def select_transport(
    *,
    socket_path: str | None,
    use_tcp: bool,
    host: str | None,
    port: int | None,
    config: RpcConfig,
) -> Transport:
    """Pick TCP when requested (or when only a port is given), else a Unix socket."""
    if use_tcp or (port and not socket_path):
        return TCPLoopbackTransport(host=host, port=port or 0)
    return UnixSocketTransport(path=socket_path or config.socket_path)


__all__ = ["instantiate", "load_target", "parse_argument", "select_transport"]
