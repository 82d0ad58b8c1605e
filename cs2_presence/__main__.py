"""Command-line entry point: ``python -m cs2_presence``."""
from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from .gsi_config import write_gsi_config
from .logging_utils import configure_logging
from .preferences import Preferences
from .runtime import PresenceRuntime
from .version import __version__


def default_config_dir() -> Path:
    base = os.environ.get("APPDATA")
    root = Path(base) if base else Path.home() / ".config"
    return root / "CS2RPC"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cs2-rich-presence",
        description="Relay Counter-Strike 2 game state to Discord rich presence.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config-dir", type=Path, default=None, help="Directory holding config.json")
    parser.add_argument("--host", default=None, help="Override the listen host for this run")
    parser.add_argument("--port", type=int, default=None, help="Override the listen port for this run")
    parser.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--log-dir", type=Path, default=None, help="Also write a rotating log file here")
    parser.add_argument(
        "--write-gsi-config",
        type=Path,
        metavar="CFG_DIR",
        default=None,
        help="Write the CS2 game state integration file under CFG_DIR and exit",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    preferences = Preferences(args.config_dir or default_config_dir())
    if not preferences.path.exists():
        try:
            preferences.save()
        except OSError as exc:
            print(f"Unable to create default config at {preferences.path}: {exc}", file=sys.stderr)
    if args.host:
        preferences.host = args.host
    if args.port is not None:
        if not 1 <= args.port <= 65535:
            print(f"Invalid port: {args.port}", file=sys.stderr)
            return 2
        preferences.http_port = args.port
    logger = configure_logging(args.log_level or preferences.log_level, args.log_dir)

    if args.write_gsi_config is not None:
        path, written = write_gsi_config(args.write_gsi_config, preferences.host, preferences.http_port)
        print(f"{'Wrote' if written else 'Kept existing'} {path}")
        return 0

    runtime = PresenceRuntime(preferences)
    stop_requested = threading.Event()

    def _request_stop(signum, _frame) -> None:
        logger.info("Received signal %s; shutting down", signum)
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    if not runtime.start():
        runtime.synchronizer.shutdown()
        return 1
    try:
        while not stop_requested.wait(0.5):
            pass
    finally:
        runtime.stop()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
