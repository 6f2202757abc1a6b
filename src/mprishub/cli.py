"""CLI entry point for mprishub."""

from __future__ import annotations

import argparse
import logging
import sys

import dbus
from dbus.mainloop.glib import DBusGMainLoop
from gi.repository import GLib

from mprishub.codec import MPRIS_PREFIX
from mprishub.config import load_config
from mprishub.display import LiveDisplay, PipePrinter
from mprishub.errors import ConfigError
from mprishub.logs import setup_logging_from_config
from mprishub.registry import PlayerRegistry

log = logging.getLogger(__name__)

_BOLD = "\033[1m"
_RESET = "\033[0m"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mprishub",
        description="Follow every MPRIS2 media player on the session bus and control the current one.",
    )
    parser.add_argument(
        "--player",
        type=str,
        default=None,
        help="MPRIS2 bus name of the player to keep current (e.g. org.mpris.MediaPlayer2.spotify)",
    )
    parser.add_argument(
        "--list-players",
        action="store_true",
        help="List available MPRIS2 players and exit.",
    )
    parser.add_argument(
        "--pipe",
        action="store_true",
        help="Plain text mode: print a line whenever the current track or status changes.",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to a config.toml file.")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level.",
    )
    return parser


def _list_players(bus: dbus.Bus) -> int:
    try:
        players = sorted(str(n) for n in bus.list_names() if str(n).startswith(MPRIS_PREFIX))
    except dbus.exceptions.DBusException as e:
        print(f"Could not list bus names: {e}", file=sys.stderr)
        return 1
    if not players:
        print("No MPRIS2 players found.")
    else:
        print(f"{_BOLD}Available players:{_RESET}")
        for p in players:
            print(f"  • {p}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    setup_logging_from_config(config.logging, args.log_level)

    DBusGMainLoop(set_as_default=True)
    try:
        bus = dbus.SessionBus()
    except dbus.exceptions.DBusException as e:
        print(f"Could not connect to the session bus: {e}", file=sys.stderr)
        return 1

    if args.list_players:
        return _list_players(bus)

    loop = GLib.MainLoop()
    registry = PlayerRegistry(bus, config.clock)
    if args.pipe:
        consumer = PipePrinter(registry, args.player)
    else:
        consumer = LiveDisplay(registry, loop, config.ui, args.player)

    registry.init(consumer.callbacks(), on_ready=consumer.refresh)
    try:
        if args.pipe:
            loop.run()
        else:
            consumer.run()
    except KeyboardInterrupt:
        pass
    finally:
        registry.destroy()
        log.info("Shut down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
