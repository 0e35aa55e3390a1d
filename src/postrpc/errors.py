"""Exception hierarchy shared by client proxies, connectors and dispatchers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from postrpc.protocol.contracts import ErrorPayload


class RpcError(Exception):
    """Base class for every error raised by postrpc."""

    code: str = "RPC_ERROR"

    def __init__(self, message: str, *, code: Any = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class ConnectionTimeout(RpcError):
    """The handshake was not acknowledged before the connect deadline."""

    code = "CONNECTION_TIMEOUT"

    def __init__(self, interface_name: str, timeout: float) -> None:
        self.interface_name = interface_name
        self.timeout = timeout
        super().__init__(f"Connection timeout: {interface_name!r} did not answer within {timeout}s")


class UnknownCommand(RpcError):
    """A command is not part of the interface whitelist."""

    code = "UNKNOWN_COMMAND"

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"Unknown command: {command}")


class MethodError(RpcError):
    """A service method raised, or its awaitable result failed."""

    code = "METHOD_ERROR"

    def __init__(self, message: str, *, code: Any = None, stack: str | None = None) -> None:
        self.stack = stack
        super().__init__(message, code=code)


class RemoteError(MethodError):
    """Error reconstructed on the client from an ``error`` reply."""

    def __init__(self, message: str, *, code: Any = None, stack: str | None = None) -> None:
        super().__init__(message, code=code, stack=stack)
        if code is None:
            # Remote errors without a code keep it unset rather than inheriting METHOD_ERROR.
            self.code = None


class UnknownReply(RpcError):
    """A reply arrived whose id matches no pending call. Logged, never raised."""

    code = "UNKNOWN_REPLY"

    def __init__(self, reply_id: Any) -> None:
        self.reply_id = reply_id
        super().__init__(f"Unknown reply: {reply_id!r}")


class ClientClosedError(RpcError):
    """The client proxy was closed while a call was pending, or before it was made."""

    code = "CLIENT_CLOSED"

    def __init__(self, interface_name: str) -> None:
        self.interface_name = interface_name
        super().__init__(f"Client for {interface_name!r} is closed")


class ChannelClosedError(RpcError):
    """A message was posted to an endpoint or stream that is no longer open."""

    code = "CHANNEL_CLOSED"


def error_from_payload(payload: ErrorPayload) -> RpcError:
    """Rebuild an exception from an error reply payload.

    Codes of errors raised by the dispatcher itself map back to their own
    classes so that callers can catch :class:`UnknownCommand` directly; any
    other failure becomes a :class:`RemoteError`.
    """
    if payload.code == UnknownCommand.code:
        return UnknownCommand(payload.message.removeprefix("Unknown command: "))
    return RemoteError(payload.message, code=payload.code, stack=payload.stack)


__all__ = [
    "ChannelClosedError",
    "ClientClosedError",
    "ConnectionTimeout",
    "MethodError",
    "RemoteError",
    "RpcError",
    "UnknownCommand",
    "UnknownReply",
    "error_from_payload",
]
