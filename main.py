"""Command-line interface for the movie catalog service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from dotenv import load_dotenv

from movie_api.config import Settings
from movie_api.database import Database

logger = logging.getLogger("movie_api.main")

_GRACEFUL_SHUTDOWN_SECONDS = 10


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Movie catalog API utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the MongoDB indexes")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listening port (default: PORT or 3000)",
    )
    serve_parser.add_argument(
        "--env-file",
        default=".env",
        help="Environment file to load before reading settings",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> None:
    database = Database.from_settings(settings)

    async def _run() -> None:
        try:
            await database.initialize()
        finally:
            database.close()

    asyncio.run(_run())
    logger.info("Database %s initialised", settings.database_name)


def _serve(*, settings: Settings, host: str | None, port: int | None) -> None:
    from movie_api.api import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting movie API on http://%s:%s (%s)", bind_host, bind_port, settings.environment)

    app = create_app(settings=settings)
    uvicorn.run(
        app,
        host=bind_host,
        port=bind_port,
        log_level="info",
        access_log=False,
        timeout_graceful_shutdown=_GRACEFUL_SHUTDOWN_SECONDS,
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    load_dotenv(getattr(args, "env_file", ".env"))
    settings = Settings.from_env()

    if args.command == "serve":
        _serve(settings=settings, host=args.host, port=args.port)
    elif args.command == "init-db":
        _initialise_database(settings)
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
