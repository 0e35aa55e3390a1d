"""Correlation id generation for outgoing calls."""

from __future__ import annotations

import itertools
import secrets
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from postrpc.protocol.constants import HANDSHAKE_ID

if TYPE_CHECKING:
    from collections.abc import Container

# Ids stay within the range every JSON implementation represents exactly.
_MAX_ID = 2**53 - 1


@runtime_checkable
class IdGenerator(Protocol):
    """Produces ids for new calls."""

    def next_id(self, in_use: Container[int] = ()) -> int:
        """Return an id that is neither reserved nor present in *in_use*."""
        ...


class RandomIdGenerator:
    """Random positive ids, redrawn on collision with an outstanding call."""

    def next_id(self, in_use: Container[int] = ()) -> int:
        while True:
            candidate = secrets.randbelow(_MAX_ID) + 1
            if candidate != HANDSHAKE_ID and candidate not in in_use:
                return candidate


class SequentialIdGenerator:
    """Monotonic ids starting at 1; deterministic, for tests and debugging."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(max(start, HANDSHAKE_ID + 1))

    def next_id(self, in_use: Container[int] = ()) -> int:
        for candidate in self._counter:
            if candidate not in in_use:
                return candidate
        raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["IdGenerator", "RandomIdGenerator", "SequentialIdGenerator"]
