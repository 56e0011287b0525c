"""Command-line interface for makerspace-dash."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from . import constants
from .app import DashboardApp
from .config import DashConfig, load_config
from .core import DashboardError
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="makerspace-dash", description="Makerspace printer dashboard"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Serve the dashboard API")

    subparsers.add_parser(
        "refresh", help="Run one emptying refresh and print the annotated printers"
    )

    flag_parser = subparsers.add_parser(
        "set-flag", help="Set or clear the needs-emptying flag of a printer"
    )
    flag_parser.add_argument("printer_id", metavar="PRINTER_ID")
    flag_parser.add_argument("state", choices=("on", "off"))

    clear_parser = subparsers.add_parser(
        "clear", help="Mark a printer's build plate as emptied"
    )
    clear_parser.add_argument("printer_id", metavar="PRINTER_ID")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def _run_with_app(
    config: DashConfig, action: Callable[[DashboardApp], Awaitable[T]]
) -> T:
    async def _main() -> T:
        async with DashboardApp(config) as app:
            return await action(app)

    return asyncio.run(_main())


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 1

    if args.command == "serve":
        DashboardApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    configure_logging(
        config.logging.level,
        log_path=config.logging.path,
        log_network=config.logging.log_network,
    )

    try:
        if args.command == "refresh":
            annotated = _run_with_app(config, lambda app: app.refresh_once())
            print(json.dumps([item.as_dict() for item in annotated], indent=2))
            return 0

        if args.command == "set-flag":
            _run_with_app(
                config, lambda app: app.set_flag_once(args.printer_id, args.state == "on")
            )
            return 0

        if args.command == "clear":
            _run_with_app(config, lambda app: app.set_flag_once(args.printer_id, False))
            return 0
    except (DashboardError, ValueError) as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        return 1

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
