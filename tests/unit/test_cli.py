"""CLI tests for the `postrpc` command group."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import click
import pytest
from click.testing import CliRunner

import postrpc
from postrpc.channel.transports import TCPLoopbackTransport, UnixSocketTransport
from postrpc.cli.commands.root import cli
from postrpc.cli.options import instantiate, load_target, parse_argument, select_transport
from postrpc.config import RpcConfig
from postrpc.errors import ConnectionTimeout, RemoteError
from postrpc.protocol.constants import HANDSHAKE_COMMAND
from postrpc.version import get_postrpc_version
from tests.helpers import Calculator

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.unit


def test_version_option() -> None:
    result = CliRunner().invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert get_postrpc_version() in result.output


def test_package_version_matches_metadata() -> None:
    assert postrpc.__version__ == get_postrpc_version()


def test_methods_lists_introspected_names() -> None:
    result = CliRunner().invoke(cli, ["methods", "tests.helpers.services:Calculator"])

    assert result.exit_code == 0
    assert result.output.split() == [
        "add",
        "divide",
        "slow_add",
        "quota",
        "nothing",
        "unserialisable",
    ]


def test_methods_rejects_malformed_target() -> None:
    result = CliRunner().invoke(cli, ["methods", "no_colon_here"])

    assert result.exit_code == 2
    assert "MODULE:ATTRIBUTE" in result.output


def test_config_init_then_show(tmp_path: Path) -> None:
    runner = CliRunner()
    path = tmp_path / "config.toml"

    init = runner.invoke(cli, ["config", "init", "--path", str(path)])
    show = runner.invoke(cli, ["config", "show", "--path", str(path)])

    assert init.exit_code == 0
    assert path.exists()
    assert show.exit_code == 0
    assert "[rpc]" in show.output
    assert "connect_timeout_seconds" in show.output


def test_config_init_refuses_to_overwrite(tmp_path: Path) -> None:
    runner = CliRunner()
    path = tmp_path / "config.toml"
    path.write_text("[rpc]\n", encoding="utf-8")

    result = runner.invoke(cli, ["config", "init", "--path", str(path)])

    assert result.exit_code == 1
    assert "already exists" in result.output
    assert path.read_text(encoding="utf-8") == "[rpc]\n"


def test_config_show_reports_missing_file(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["config", "show", "--path", str(tmp_path / "none.toml")])

    assert result.exit_code == 0
    assert "not found" in result.output


class TestCall:
    def _invoke(self, side_effect: object = None, return_value: object = None):
        mock_call = AsyncMock(side_effect=side_effect, return_value=return_value)
        with (
            patch("postrpc.cli.commands.call._call", mock_call),
            patch("postrpc.cli.commands.call.configure_logging"),
        ):
            result = CliRunner().invoke(
                cli,
                ["call", "add", "1", "2", "--interface", "Calculator", "--tcp", "--port", "9"],
            )
        return result, mock_call

    def test_prints_json_result_and_parses_arguments(self) -> None:
        result, mock_call = self._invoke(return_value={"sum": 3})

        assert result.exit_code == 0
        assert '"sum": 3' in result.output
        kwargs = mock_call.await_args.kwargs
        assert kwargs["args"] == [1, 2]
        assert kwargs["method"] == "add"
        assert kwargs["interface_name"] == "Calculator"

    def test_remote_error_exits_one(self) -> None:
        result, _ = self._invoke(side_effect=RemoteError("boom", code="QUOTA"))

        assert result.exit_code == 1
        assert "boom" in result.output
        assert "QUOTA" in result.output

    def test_connection_timeout_exits_two(self) -> None:
        result, _ = self._invoke(side_effect=ConnectionTimeout("Calculator", 1.0))

        assert result.exit_code == 2
        assert "Calculator" in result.output

    def test_unreachable_server_exits_two(self) -> None:
        result, _ = self._invoke(side_effect=ConnectionRefusedError("refused"))

        assert result.exit_code == 2
        assert "Cannot reach server" in result.output


def test_serve_builds_dispatcher_from_options() -> None:
    serve_forever = AsyncMock()
    with (
        patch("postrpc.cli.commands.serve._serve_forever", serve_forever),
        patch("postrpc.cli.commands.serve.configure_logging"),
    ):
        result = CliRunner().invoke(
            cli,
            [
                "serve",
                "tests.helpers.services:Calculator",
                "--tcp",
                "--interface",
                "Calc",
                "--method",
                "add",
                "--method",
                "divide",
                "--access-control",
            ],
        )

    assert result.exit_code == 0, result.output
    dispatcher, transport = serve_forever.await_args.args
    assert dispatcher.interface_name == "Calc"
    assert dispatcher.whitelist == ("add", "divide", HANDSHAKE_COMMAND)
    assert dispatcher.access_control is True
    assert isinstance(transport, TCPLoopbackTransport)


class TestOptions:
    def test_load_target_resolves_attribute(self) -> None:
        assert load_target("tests.helpers.services:Calculator") is Calculator

    def test_load_target_reports_missing_module(self) -> None:
        with pytest.raises(click.BadParameter, match="Cannot import"):
            load_target("definitely_not_a_module_xyz:Thing")

    def test_instantiate_calls_classes_only(self) -> None:
        service = Calculator()

        assert isinstance(instantiate(Calculator), Calculator)
        assert instantiate(service) is service

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1", 1), ('{"a": [1]}', {"a": [1]}), ("hello", "hello"), ("true", True)],
    )
    def test_parse_argument(self, raw: str, expected: object) -> None:
        assert parse_argument(raw) == expected

    def test_select_transport(self) -> None:
        config = RpcConfig()

        tcp = select_transport(socket_path=None, use_tcp=False, host=None, port=1234, config=config)
        unix = select_transport(
            socket_path="/tmp/p.sock", use_tcp=False, host=None, port=None, config=config
        )

        assert isinstance(tcp, TCPLoopbackTransport)
        assert isinstance(unix, UnixSocketTransport)
        assert unix.path == "/tmp/p.sock"
