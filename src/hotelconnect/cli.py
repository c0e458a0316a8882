"""
Command-line interface for HotelConnect.

Provides CLI commands for running the service:
- serve: Start the translate API under uvicorn
- config: Print the resolved configuration

Usage:
    hotelconnect serve [--host HOST] [--port PORT]
    hotelconnect config

Configuration comes from config/server.ini (or server.example.ini) with
HOTEL_* environment variable overrides; see ``hotelconnect.config``.
"""

import argparse
import logging
import sys

from hotelconnect.config import AppConfig

LOG_FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
}


def configure_logging(cfg: AppConfig) -> None:
    """Apply the configured level and format to the root logger."""
    level = logging.getLevelName(cfg.logging.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMATS.get(cfg.logging.format, LOG_FORMATS["detailed"]),
        force=True,
    )


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the translate API.

    Returns:
        0 on clean shutdown (Ctrl+C), 1 on startup error.
    """
    from hotelconnect.api.server import start_server
    from hotelconnect.config import config

    configure_logging(config)
    host = getattr(args, "host", None) or config.server.host
    port = getattr(args, "port", None) or config.server.port

    try:
        start_server(host=host, port=port)
        return 0
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0
    except OSError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Print the configuration summary."""
    from hotelconnect.config import print_config_summary

    print_config_summary()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="hotelconnect",
        description="HotelConnect - multilingual guest/staff hotel chat",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the translate API",
        description="Start the /api/translate server under uvicorn.",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        help="Host to bind to (default: server.host, or HOTEL_HOST env var)",
    )
    serve_parser.add_argument(
        "--port",
        "-p",
        type=int,
        help="Port to listen on (default: server.port, or HOTEL_PORT env var)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    config_parser = subparsers.add_parser(
        "config",
        help="Show the resolved configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
