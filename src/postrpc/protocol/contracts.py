"""Request/reply contract types exchanged between client proxies and dispatchers."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from postrpc.protocol.constants import (
    HANDSHAKE_COMMAND,
    HANDSHAKE_ID,
    STATUS_ERROR,
    STATUS_OK,
)

type ReplyStatus = Literal["OK", "error"]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase dictionary that travels over a channel."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RpcRequest(_WireModel):
    """Envelope for a single command sent from a client proxy to a dispatcher.

    ``interface_name`` selects the logical service on a shared channel and
    ``id`` correlates the eventual reply with the pending call.  The handshake
    always uses ``id == 0`` and ``command == "getRpcInterface"``.
    """

    command: str = Field(description="Name of the remote method to invoke")
    interface_name: str = Field(
        alias="interfaceName",
        description="Logical service identifier on the shared channel",
    )
    args: list[Any] = Field(
        default_factory=list,
        description="Positional arguments for the remote method",
    )
    id: int = Field(description="Correlation id, unique among outstanding calls")

    @field_validator("args", mode="before")
    @classmethod
    def _null_args_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @staticmethod
    def handshake(interface_name: str) -> RpcRequest:
        """Create the interface request sent while connecting."""
        return RpcRequest(
            command=HANDSHAKE_COMMAND,
            interface_name=interface_name,
            id=HANDSHAKE_ID,
        )

    def to_wire(self) -> dict[str, Any]:
        data = super().to_wire()
        if self.command == HANDSHAKE_COMMAND and not self.args:
            # The interface request carries no argument list on the wire.
            data.pop("args", None)
        return data


class ErrorPayload(_WireModel):
    """Structured error information carried by an ``error`` reply."""

    message: str = Field(description="Human-readable error description")
    stack: str | None = Field(
        default=None,
        description="Formatted traceback from the remote side, when available",
    )
    code: Any = Field(
        default=None,
        description="Optional machine-readable error code",
    )

    @staticmethod
    def from_exception(exc: BaseException, *, stack: str | None = None) -> ErrorPayload:
        """Describe *exc* for transmission to the caller."""
        return ErrorPayload(
            message=str(exc) or type(exc).__name__,
            stack=stack,
            code=getattr(exc, "code", None),
        )


class RpcReply(_WireModel):
    """Envelope for the reply a dispatcher sends back for one request.

    ``status`` is ``"OK"`` when the call succeeded and ``result`` then carries
    the returned value.  When ``status`` is ``"error"``, ``result`` holds the
    dumped :class:`ErrorPayload`.
    """

    status: ReplyStatus = Field(description="Outcome of the call")
    result: Any = Field(default=None, description="Return value or error payload")
    interface_name: str = Field(
        alias="interfaceName",
        description="Interface name of the replying dispatcher",
    )
    id: int = Field(description="Echoed id from the originating request")

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def error_payload(self) -> ErrorPayload:
        """Parse ``result`` of an error reply, tolerating bare string payloads."""
        if isinstance(self.result, dict):
            return ErrorPayload.model_validate(self.result)
        return ErrorPayload(message=str(self.result))

    def to_wire(self) -> dict[str, Any]:
        # ``result`` is always present on the wire, even when it is None.
        return self.model_dump(by_alias=True)

    @staticmethod
    def success(request_id: int, interface_name: str, result: Any) -> RpcReply:
        """Create a successful reply for the request with *request_id*."""
        return RpcReply(
            status=STATUS_OK,
            result=result,
            interface_name=interface_name,
            id=request_id,
        )

    @staticmethod
    def failure(request_id: int, interface_name: str, error: ErrorPayload) -> RpcReply:
        """Create an error reply carrying *error*."""
        return RpcReply(
            status=STATUS_ERROR,
            result=error.to_wire(),
            interface_name=interface_name,
            id=request_id,
        )


__all__ = [
    "ErrorPayload",
    "ReplyStatus",
    "RpcReply",
    "RpcRequest",
]
