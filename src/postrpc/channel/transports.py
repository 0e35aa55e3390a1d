"""Socket transports used by stream channels.

Provides Unix socket transport on POSIX and TCP loopback fallback on Windows.
``DefaultTransport`` is automatically set to the best choice for the current platform.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import platform
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

from postrpc.paths import get_default_socket_path
from postrpc.protocol.constants import STREAM_LIMIT_BYTES

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

    ClientHandler = Callable[
        [asyncio.StreamReader, asyncio.StreamWriter],
        Coroutine[Any, Any, None],
    ]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerHandle:
    """Handle returned after starting a transport server.

    Attributes:
        transport_type: Identifier string (``socket`` or ``tcp``).
        address: The connection address (file path or hostname).
        port: TCP port when applicable; ``None`` for socket transport.
        close: Async callable to shut down the server gracefully.
    """

    transport_type: str
    address: str
    port: int | None = None
    close: Callable[[], Coroutine[Any, Any, None]] | None = None

    @property
    def origin(self) -> str:
        """Origin string clients see for messages coming from this server."""
        return format_origin(self.transport_type, self.address, self.port)


def format_origin(transport_type: str, address: str, port: int | None = None) -> str:
    """Build the origin label of a stream endpoint (``unix:/path`` or ``tcp://host:port``)."""
    if transport_type == "tcp":
        return f"tcp://{address}:{port}"
    return f"unix:{address}"


# ---------------------------------------------------------------------------
# Unix socket transport
# ---------------------------------------------------------------------------


class UnixSocketTransport:
    """Transport over Unix domain sockets.

    Only available on macOS and Linux.  On Windows this class raises
    ``NotImplementedError`` at construction time.
    """

    transport_type = "socket"

    def __init__(self, path: str | None = None) -> None:
        if platform.system() == "Windows":
            msg = "Unix sockets are not supported on Windows"
            raise NotImplementedError(msg)
        self._path = path or str(get_default_socket_path())

    @property
    def path(self) -> str:
        return self._path

    async def start_server(
        self,
        handler: ClientHandler,
    ) -> ServerHandle:
        """Bind a Unix socket server at the configured path.

        Any stale socket file is removed before binding.
        """
        with contextlib.suppress(FileNotFoundError):
            os.unlink(self._path)

        parent = os.path.dirname(self._path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        server = await asyncio.start_unix_server(
            handler,
            path=self._path,
            limit=STREAM_LIMIT_BYTES,
        )

        if sys.platform != "win32":
            os.chmod(self._path, 0o600)

        logger.info("Unix socket server listening on %s", self._path)

        async def _close() -> None:
            server.close()
            await server.wait_closed()
            with contextlib.suppress(FileNotFoundError):
                os.unlink(self._path)
            logger.info("Unix socket server stopped")

        return ServerHandle(
            transport_type=self.transport_type,
            address=self._path,
            port=None,
            close=_close,
        )

    async def connect(
        self,
        address: str | None = None,
        port: int | None = None,
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Open a connection to the Unix socket at *address* (default: the configured path)."""
        target = address or self._path
        reader, writer = await asyncio.open_unix_connection(target, limit=STREAM_LIMIT_BYTES)
        logger.debug("Connected to Unix socket at %s", target)
        return reader, writer


# ---------------------------------------------------------------------------
# TCP loopback transport
# ---------------------------------------------------------------------------

_LOCALHOST = "127.0.0.1"


class TCPLoopbackTransport:
    """Transport over a TCP socket bound to localhost.

    Used as a cross-platform fallback when Unix sockets are unavailable.  The
    OS picks a free port unless one is given explicitly.
    """

    transport_type = "tcp"

    def __init__(self, host: str | None = None, port: int = 0) -> None:
        self._host = host or _LOCALHOST
        self._port = port

    async def start_server(
        self,
        handler: ClientHandler,
    ) -> ServerHandle:
        """Bind a TCP server on localhost."""
        server = await asyncio.start_server(
            handler,
            host=self._host,
            port=self._port,
            limit=STREAM_LIMIT_BYTES,
        )

        addrs = server.sockets[0].getsockname() if server.sockets else (self._host, 0)
        bound_port: int = addrs[1]

        logger.info("TCP loopback server listening on %s:%d", self._host, bound_port)

        async def _close() -> None:
            server.close()
            await server.wait_closed()
            logger.info("TCP loopback server stopped")

        return ServerHandle(
            transport_type=self.transport_type,
            address=self._host,
            port=bound_port,
            close=_close,
        )

    async def connect(
        self,
        address: str | None = None,
        port: int | None = None,
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Open a TCP connection to *address*:*port*.

        Raises:
            ValueError: If no port is known.
        """
        target_port = port if port is not None else self._port
        if not target_port:
            msg = "TCP transport requires a port"
            raise ValueError(msg)
        host = address or self._host
        reader, writer = await asyncio.open_connection(host, target_port, limit=STREAM_LIMIT_BYTES)
        logger.debug("Connected to TCP server at %s:%d", host, target_port)
        return reader, writer


# ---------------------------------------------------------------------------
# Default transport selection
# ---------------------------------------------------------------------------

if sys.platform == "win32":
    DefaultTransport = TCPLoopbackTransport
else:
    DefaultTransport = UnixSocketTransport

type Transport = UnixSocketTransport | TCPLoopbackTransport

__all__ = [
    "DefaultTransport",
    "ServerHandle",
    "TCPLoopbackTransport",
    "Transport",
    "UnixSocketTransport",
    "format_origin",
]
