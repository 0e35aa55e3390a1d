"""Server side: execute incoming commands against a wrapped service and reply."""

from __future__ import annotations

import asyncio
import inspect
import logging
import traceback
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from postrpc.errors import MethodError, UnknownCommand
from postrpc.protocol.constants import HANDSHAKE_COMMAND
from postrpc.protocol.contracts import ErrorPayload, RpcReply, RpcRequest
from postrpc.registry import MethodTable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable

    from postrpc.channel.base import Envelope, Inbox, MessagePort, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """Injected as first argument of every call when access control is on.

    Attributes:
        calling_source: Port addressing the caller.
        calling_origin: Origin the request came from.
    """

    calling_source: MessagePort
    calling_origin: str


def _format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


class Dispatcher:
    """Expose a subset of a service's methods to clients on one or more inboxes.

    The whitelist comes from, in order of precedence: an explicit
    :class:`MethodTable`, an explicit list of names, or introspection of the
    service.  The handshake method is always appended.

    Usage::

        dispatcher = Dispatcher(Calculator(), whitelist=["add"])
        dispatcher.listen(endpoint)
        ...
        dispatcher.close()
    """

    def __init__(
        self,
        service: object,
        *,
        interface_name: str | None = None,
        whitelist: Iterable[str] | None = None,
        methods: MethodTable | None = None,
        access_control: bool = False,
    ) -> None:
        self._service = service
        self._interface_name = interface_name or type(service).__name__
        if methods is None:
            if whitelist is None:
                logger.warning(
                    "No method whitelist for %s; public methods are determined automatically",
                    self._interface_name,
                )
            methods = MethodTable.from_service(service, whitelist)
        self._methods = methods
        self._whitelist: tuple[str, ...] = (*methods.names, HANDSHAKE_COMMAND)
        self._access_control = access_control
        self._subscriptions: list[Subscription] = []
        self._tasks: set[asyncio.Task[None]] = set()

    def __enter__(self) -> Dispatcher:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def interface_name(self) -> str:
        return self._interface_name

    @property
    def whitelist(self) -> tuple[str, ...]:
        return self._whitelist

    @property
    def access_control(self) -> bool:
        return self._access_control

    @property
    def in_flight(self) -> int:
        """Number of awaitable results still being awaited."""
        return len(self._tasks)

    def get_rpc_interface(self) -> list[str]:
        """Signal a new connection to the service and return the whitelist."""
        hook = getattr(self._service, "on_connected", None)
        if callable(hook):
            hook()
        return list(self._whitelist)

    def listen(self, inbox: Inbox) -> Subscription:
        """Start answering requests that arrive at *inbox*."""
        subscription = inbox.subscribe(self.handle)
        self._subscriptions.append(subscription)
        return subscription

    def close(self) -> None:
        """Release every subscription and cancel awaited results."""
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        for task in list(self._tasks):
            task.cancel()

    async def drain(self) -> None:
        """Wait until every awaited result has been replied to."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def handle(self, envelope: Envelope) -> None:
        """Receive handler: validate, execute and reply to one message."""
        data = envelope.data
        if not isinstance(data, dict) or data.get("interfaceName") != self._interface_name:
            return
        if "command" not in data:
            # Replies and other traffic sharing the interface name.
            return

        try:
            request = RpcRequest.model_validate(data)
        except ValidationError as exc:
            request_id = data.get("id")
            if not isinstance(request_id, int):
                logger.warning("Dropping malformed request from %s: %s", envelope.origin, exc)
                return
            error = MethodError(
                f"Invalid request: {exc.error_count()} validation error(s)",
                code="INVALID_REQUEST",
            )
            self._reply_error(envelope, request_id, error)
            return

        try:
            if request.command not in self._whitelist:
                raise UnknownCommand(request.command)
            args = list(request.args)
            if self._access_control and request.command != HANDSHAKE_COMMAND:
                args.insert(0, CallerIdentity(envelope.source, envelope.origin))
            result = self._invoke(request.command, args)
        except Exception as exc:
            logger.debug("Call %s(id=%s) failed: %s", request.command, request.id, exc)
            self._reply_error(envelope, request.id, exc)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(self._settle(envelope, request.id, result))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            self._post(envelope, RpcReply.success(request.id, self._interface_name, result))

    def _invoke(self, command: str, args: list[Any]) -> Any:
        if command == HANDSHAKE_COMMAND:
            return self.get_rpc_interface()
        handler = self._methods.get(command)
        if handler is None:
            raise UnknownCommand(command)
        return handler(*args)

    async def _settle(self, envelope: Envelope, request_id: int, result: Awaitable[Any]) -> None:
        try:
            value = await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Awaited call id=%s failed: %s", request_id, exc)
            self._reply_error(envelope, request_id, exc)
        else:
            self._post(envelope, RpcReply.success(request_id, self._interface_name, value))

    def _reply_error(self, envelope: Envelope, request_id: int, exc: BaseException) -> None:
        payload = ErrorPayload.from_exception(exc, stack=_format_stack(exc))
        self._post(envelope, RpcReply.failure(request_id, self._interface_name, payload))

    def _post(self, envelope: Envelope, reply: RpcReply) -> None:
        """Send *reply* back to the caller; never raises."""
        try:
            envelope.source.post_message(reply.to_wire(), envelope.origin)
        except (TypeError, ValueError) as exc:
            if reply.ok:
                logger.warning("Result of call id=%s cannot be sent: %s", reply.id, exc)
                self._reply_error(envelope, reply.id, exc)
                return
            error = reply.result
            if isinstance(error, dict) and error.get("code") is not None:
                logger.warning("Error code of call id=%s cannot be sent: %s", reply.id, exc)
                without_code = {key: value for key, value in error.items() if key != "code"}
                self._post(envelope, reply.model_copy(update={"result": without_code}))
                return
            logger.exception("Failed to send error reply id=%s", reply.id)
        except Exception:
            logger.exception("Failed to reply to %s (id=%s)", envelope.origin, reply.id)


def serve(
    service: object,
    inbox: Inbox,
    *,
    interface_name: str | None = None,
    whitelist: Iterable[str] | None = None,
    access_control: bool = False,
) -> Dispatcher:
    """Wrap *service* in a :class:`Dispatcher` listening on *inbox*."""
    dispatcher = Dispatcher(
        service,
        interface_name=interface_name,
        whitelist=whitelist,
        access_control=access_control,
    )
    dispatcher.listen(inbox)
    return dispatcher


__all__ = ["CallerIdentity", "Dispatcher", "serve"]
