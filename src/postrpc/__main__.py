"""CLI entry point for postrpc."""

from __future__ import annotations

from postrpc.cli.commands.root import cli


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
