"""CLI entrypoint for astreus."""

from __future__ import annotations

import argparse
from collections.abc import Callable
from importlib import metadata
from typing import Sequence

from .app import AstreusApp
from .config import ensure_config_dir

DEFAULT_COMMAND = "chat"


def _run_chat(_args: argparse.Namespace) -> None:
    ensure_config_dir()
    app = AstreusApp()
    app.run()


SUBCOMMANDS: dict[str, tuple[str, Callable[[argparse.Namespace], None]]] = {
    "chat": ("Start the chat interface (default)", _run_chat),
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="astreus", description="Astreus terminal chat client")
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    subparsers = parser.add_subparsers(dest="command")
    for name, (help_text, _handler) in SUBCOMMANDS.items():
        subparsers.add_parser(name, help=help_text)
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Handle CLI flags, then run the selected subcommand."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("astreus-cli")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"astreus {version}")
        return

    _help, handler = SUBCOMMANDS[args.command or DEFAULT_COMMAND]
    handler(args)


if __name__ == "__main__":
    main()
