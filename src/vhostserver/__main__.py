"""
=============================================================================
VHOSTSERVER CLI ENTRY POINT
=============================================================================

    # Serve according to ./server.conf (written with defaults if missing)
    python -m vhostserver

    # Another config file
    python -m vhostserver --config /etc/vhostserver/server.conf

    # Tuning that the config file does not cover
    python -m vhostserver --log-level DEBUG --workers 16

    # Running under a supervisor: no stdin command listener
    python -m vhostserver --no-stdin

Startup order:

    1. load_config()        never fails; defaults on any config problem
    2. bootstrap_tls()      only when "ssl on"; falls back to plain HTTP
    3. HTTPServer.run()     blocks; exit status 1 if the port cannot be bound

=============================================================================
"""

import argparse
import dataclasses
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .config_parser import DEFAULT_CONFIG_FILE, load_config
from .control import CommandListener
from .server import HTTPServer
from .tls import bootstrap_tls


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vhostserver",
        description="Static file HTTP(S) server with name-based virtual hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m vhostserver                             # ./server.conf
  python -m vhostserver --config sites.conf         # another config file
  python -m vhostserver --log-level DEBUG           # show vhost decisions
  python -m vhostserver --workers 16 --no-stdin     # under a supervisor
        """,
    )

    parser.add_argument(
        "--config", "-c",
        default=str(DEFAULT_CONFIG_FILE),
        help=f"Path to the directive config file (default: {DEFAULT_CONFIG_FILE})",
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum concurrent connections (default: 64)",
    )

    parser.add_argument(
        "--no-stdin",
        action="store_true",
        help="Do not read operator commands ('stop') from stdin",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"vhostserver {__version__}",
    )

    return parser


def apply_overrides(config: ServerConfig, args: argparse.Namespace) -> ServerConfig:
    """Runtime tuning from the command line on top of the parsed config."""
    changes = {}
    if args.log_level is not None:
        changes["log_level"] = args.log_level
    if args.workers is not None:
        changes["max_workers"] = args.workers
    return dataclasses.replace(config, **changes) if changes else config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    config = apply_overrides(load_config(args.config), args)
    try:
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    credentials = bootstrap_tls(config.tls)
    server = HTTPServer(config, credentials)

    if not args.no_stdin:
        CommandListener(on_stop=server.shutdown).start()

    try:
        server.run()
    except OSError as e:
        print(f"Error: could not start server: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
