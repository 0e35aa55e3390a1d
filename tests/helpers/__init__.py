"""Test helpers package."""

from tests.helpers.rpc import FAST_CONFIG, connect_local
from tests.helpers.services import Calculator, Greeter, SlowService
from tests.helpers.wait import settle, wait_until

__all__ = [
    "FAST_CONFIG",
    "Calculator",
    "Greeter",
    "SlowService",
    "connect_local",
    "settle",
    "wait_until",
]
