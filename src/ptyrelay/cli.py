"""Command-line interface for the ptyrelay server.

Starts the WebSocket server, prints ``{"port": ..., "pid": ...}`` on
stdout once the socket is bound, and serves until interrupted.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="ptyrelay",
        description="WebSocket bridge to a local interactive shell",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Listen port (0 for a random port) [default: 0]",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/ptyrelay.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    if args.port is not None and not 0 <= args.port <= 65535:
        parser.error(f"port must be between 0 and 65535, got {args.port}")
    return args


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the ptyrelay CLI."""
    args = parse_args(argv)

    from ptyrelay.config.settings import load_settings
    from ptyrelay.endpoint.server import run_server
    from ptyrelay.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.port is not None:
        settings.server.port = args.port
    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    logger.debug("Startup args: port=%s", settings.server.port)
    run_server(settings)


if __name__ == "__main__":
    main()
