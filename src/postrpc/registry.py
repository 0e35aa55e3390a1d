"""Method registry: deciding which service methods are callable over a channel.

Two ways to describe an interface:

* explicitly, with a :class:`MethodTable` built by ``register()`` calls or
  from a whitelist of method names;
* by introspection with :func:`callable_methods`, which applies the
  :func:`is_externally_callable` predicate to the service class and honours
  the :func:`remote` marker when any method carries it.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, overload

from postrpc.protocol.constants import HANDSHAKE_COMMAND

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

REMOTE_ATTR = "_postrpc_remote"

LIFECYCLE_HOOKS: frozenset[str] = frozenset(
    {"on_connected", "close", "get_rpc_interface", HANDSHAKE_COMMAND}
)


class RpcService:
    """Optional base class for served objects.

    Members defined here are never exposed.  ``on_connected`` is called every
    time a client performs the handshake.
    """

    def on_connected(self) -> None:
        """Hook invoked when a client requests the interface."""


_EXCLUDED_BASES: tuple[type, ...] = (object, RpcService)


def remote[F: Callable[..., Any]](fn: F) -> F:
    """Mark *fn* as remotely callable.

    Once any method of a class carries the marker, introspection exposes only
    marked methods.
    """
    setattr(fn, REMOTE_ATTR, True)
    return fn


def is_externally_callable(name: str, attr: object) -> bool:
    """Whether class attribute *attr* named *name* may be exposed by introspection.

    Public (no leading underscore), not a lifecycle hook, and a plain,
    static or class method.  Properties and other descriptors are excluded.
    """
    if name.startswith("_") or name in LIFECYCLE_HOOKS:
        return False
    return inspect.isfunction(attr) or isinstance(attr, (staticmethod, classmethod))


def _is_marked(cls: type, name: str) -> bool:
    return bool(getattr(getattr(cls, name, None), REMOTE_ATTR, False))


def callable_methods(service: object) -> tuple[str, ...]:
    """Return the externally callable method names of *service* (instance or class).

    Order follows declaration, most-derived class first.  Names shadowed by a
    subclass attribute are decided by the subclass definition.
    """
    cls = service if isinstance(service, type) else type(service)
    seen: set[str] = set()
    names: list[str] = []
    for klass in cls.__mro__:
        if klass in _EXCLUDED_BASES:
            continue
        for name, attr in vars(klass).items():
            if name in seen:
                continue
            seen.add(name)
            if is_externally_callable(name, attr):
                names.append(name)
    marked = [name for name in names if _is_marked(cls, name)]
    return tuple(marked or names)


def _missing_method(owner: str, name: str) -> Callable[..., Any]:
    def _raise(*args: Any) -> Any:
        msg = f"{owner} has no method {name!r}"
        raise AttributeError(msg)

    return _raise


class MethodTable:
    """Ordered mapping of exposed method names to handlers.

    Usage::

        table = MethodTable()

        @table.register("ping")
        def ping() -> str:
            return "pong"

        table.register("add", operator.add)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[..., Any]] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def get(self, name: str) -> Callable[..., Any] | None:
        return self._handlers.get(name)

    @overload
    def register(self, name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]: ...

    @overload
    def register(self, name: str, handler: Callable[..., Any]) -> Callable[..., Any]: ...

    def register(self, name: str, handler: Callable[..., Any] | None = None) -> Any:
        """Expose *handler* as *name*; without a handler, act as a decorator."""
        if name == HANDSHAKE_COMMAND:
            msg = f"{HANDSHAKE_COMMAND!r} is reserved for the handshake"
            raise ValueError(msg)

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self._handlers[name] = fn
            return fn

        if handler is None:
            return decorator
        return decorator(handler)

    @classmethod
    def from_service(cls, service: object, whitelist: Iterable[str] | None = None) -> MethodTable:
        """Build a table of *service*'s bound methods.

        An explicit *whitelist* is taken verbatim; names the service lacks
        fail when invoked.  Without one, :func:`callable_methods` decides.
        """
        names = callable_methods(service) if whitelist is None else tuple(whitelist)
        owner = type(service).__name__
        table = cls()
        for name in names:
            if name == HANDSHAKE_COMMAND or name in table:
                continue
            handler = getattr(service, name, None)
            if not callable(handler):
                handler = _missing_method(owner, name)
            table._handlers[name] = handler
        return table


__all__ = [
    "LIFECYCLE_HOOKS",
    "REMOTE_ATTR",
    "MethodTable",
    "RpcService",
    "callable_methods",
    "is_externally_callable",
    "remote",
]
