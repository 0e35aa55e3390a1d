"""Pytest fixtures for postrpc tests."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

from postrpc.channel.local import LocalEndpoint
from postrpc.debug_log import clear_log_buffer
from postrpc.ids import SequentialIdGenerator

_TEST_BASE_DIR = Path(tempfile.mkdtemp(prefix="postrpc-tests-"))
os.environ["POSTRPC_CONFIG_DIR"] = str(_TEST_BASE_DIR / "config")
os.environ["POSTRPC_RUNTIME_DIR"] = str(_TEST_BASE_DIR / "run")

if TYPE_CHECKING:
    from collections.abc import Generator


settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=None,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture(autouse=True)
def _clean_config_dir() -> Generator[None, None, None]:
    """Ensure config files written by one test don't leak into the next."""
    yield
    shutil.rmtree(_TEST_BASE_DIR / "config", ignore_errors=True)


@pytest.fixture(autouse=True)
def _clean_log_buffer() -> None:
    clear_log_buffer()


@pytest.fixture
def client_endpoint() -> Generator[LocalEndpoint, None, None]:
    """Endpoint playing the embedding page."""
    endpoint = LocalEndpoint("https://app.example", name="client")
    yield endpoint
    endpoint.close()


@pytest.fixture
def server_endpoint() -> Generator[LocalEndpoint, None, None]:
    """Endpoint playing the embedded frame that serves an interface."""
    endpoint = LocalEndpoint("https://widget.example", name="server")
    yield endpoint
    endpoint.close()


@pytest.fixture
def id_generator() -> SequentialIdGenerator:
    return SequentialIdGenerator()


@pytest.fixture
def short_tmp() -> Generator[Path, None, None]:
    """Create a short temp directory for Unix socket paths (macOS 104-byte limit)."""
    d = tempfile.mkdtemp(prefix="p-", dir="/tmp")
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)
