"""postrpc: request/reply RPC over fire-and-forget message channels."""

from postrpc.channel import Envelope, LocalEndpoint, StreamChannel, Subscription
from postrpc.client import ClientProxy, ConnectionState
from postrpc.config import RpcConfig
from postrpc.connector import Connector, connect
from postrpc.dispatcher import CallerIdentity, Dispatcher, serve
from postrpc.errors import (
    ClientClosedError,
    ConnectionTimeout,
    MethodError,
    RemoteError,
    RpcError,
    UnknownCommand,
)
from postrpc.registry import MethodTable, RpcService, callable_methods, remote
from postrpc.version import get_postrpc_version

__version__ = get_postrpc_version()

__all__ = [
    "CallerIdentity",
    "ClientClosedError",
    "ClientProxy",
    "ConnectionState",
    "ConnectionTimeout",
    "Connector",
    "Dispatcher",
    "Envelope",
    "LocalEndpoint",
    "MethodError",
    "MethodTable",
    "RemoteError",
    "RpcConfig",
    "RpcError",
    "RpcService",
    "StreamChannel",
    "Subscription",
    "UnknownCommand",
    "callable_methods",
    "connect",
    "remote",
    "serve",
]
