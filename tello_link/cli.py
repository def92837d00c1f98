"""Command-line interface for tello-link."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .adapters import CommandChannel
from .commands import ControlCommands
from .config import TelloLinkConfig, load_config
from .controller import TelloController
from .core import TelloLinkError, UnexpectedReplyError
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .telemetry import TelemetryRecord

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tello-link", description="Command a Tello drone over its UDP SDK"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    send_parser = subparsers.add_parser("send", help="Send one SDK command and print the reply")
    send_parser.add_argument("sdk_command", help="Command text, e.g. 'battery?'")
    send_parser.add_argument(
        "--timeout-ms", type=int, default=None, help="Reply timeout in milliseconds"
    )
    send_parser.add_argument(
        "--no-init",
        action="store_true",
        help="Skip entering SDK mode with 'command' first",
    )

    monitor_parser = subparsers.add_parser(
        "monitor", help="Print telemetry records as JSON lines"
    )
    monitor_parser.add_argument(
        "--count", type=int, default=0, help="Stop after N records (default: run forever)"
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


async def run_send(
    config: TelloLinkConfig,
    command: str,
    *,
    timeout_ms: Optional[int] = None,
    initialize: bool = True,
) -> str:
    channel = CommandChannel(
        config.peer,
        default_timeout_ms=config.commands.timeout_ms,
        debug=config.commands.debug,
    )
    async with channel:
        if initialize:
            reply = await channel.send(ControlCommands.COMMAND)
            if reply.lower() != "ok":
                raise UnexpectedReplyError(ControlCommands.COMMAND, reply)
        return await channel.send(command, timeout_ms)


async def run_monitor(config: TelloLinkConfig, *, count: int = 0) -> int:
    """Print telemetry until ``count`` records were seen (0 = forever)."""

    health: Optional[HealthReporter] = None
    server: Optional[HealthServer] = None
    if config.health.enabled:
        health = HealthReporter()
        server = HealthServer(health, config.health.host, config.health.port)

    controller = TelloController(config, health=health)
    done = asyncio.Event()
    seen = 0

    def on_state(record: TelemetryRecord) -> None:
        nonlocal seen
        print(json.dumps(record.as_dict(), sort_keys=True), flush=True)
        seen += 1
        if count and seen >= count:
            done.set()

    controller.on_state(on_state)
    try:
        if server is not None:
            await server.start()
        await controller.connect()
        await done.wait()
    finally:
        await controller.disconnect()
        if server is not None:
            await server.stop()
    return seen


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(
        config.logging.level,
        log_path=config.logging.path,
        log_network=config.logging.log_network,
    )

    if args.command == "send":
        try:
            reply = asyncio.run(
                run_send(
                    config,
                    args.sdk_command,
                    timeout_ms=args.timeout_ms,
                    initialize=not args.no_init,
                )
            )
        except (TelloLinkError, ValueError) as exc:
            LOGGER.error("Command failed: %s", exc)
            return 1
        print(reply)
        return 0

    if args.command == "monitor":
        try:
            with contextlib.suppress(KeyboardInterrupt):
                asyncio.run(run_monitor(config, count=max(0, args.count)))
        except (TelloLinkError, OSError) as exc:
            LOGGER.error("Telemetry monitor failed: %s", exc)
            return 1
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
