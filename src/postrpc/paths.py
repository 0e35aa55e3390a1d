"""XDG-compliant path helpers for postrpc configuration and sockets."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir, user_runtime_dir


def get_config_dir() -> Path:
    """Get the config directory for postrpc (config.toml)."""
    override = os.environ.get("POSTRPC_CONFIG_DIR")
    if override:
        return Path(override).resolve()
    return Path(user_config_dir("postrpc"))


def get_config_path() -> Path:
    """Get the path to the main config file."""
    return get_config_dir() / "config.toml"


def get_runtime_dir() -> Path:
    """Get the runtime directory that holds default socket files."""
    override = os.environ.get("POSTRPC_RUNTIME_DIR")
    if override:
        return Path(override).resolve()
    return Path(user_runtime_dir("postrpc"))


def get_default_socket_path() -> Path:
    """Get the Unix socket path used when none is configured."""
    return get_runtime_dir() / "postrpc.sock"


__all__ = [
    "get_config_dir",
    "get_config_path",
    "get_default_socket_path",
    "get_runtime_dir",
]
