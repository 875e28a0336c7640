"""Module executed when running ``python -m movies_api``."""

from __future__ import annotations

import argparse
import asyncio
import logging

import uvicorn

from app.config import settings
from app.seeds import seed_database

logger = logging.getLogger(__name__)


def serve() -> None:
    """Start the uvicorn server using the configured settings."""

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


def seed() -> None:
    genre_count = asyncio.run(seed_database(settings))
    logger.info("Seeding complete: %s genres available", genre_count)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="movies_api", description="Movies API")
    parser.add_argument(
        "command",
        nargs="?",
        choices=("serve", "seed"),
        default="serve",
        help="serve the API (default) or seed the database",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level)
    if args.command == "seed":
        seed()
    else:
        serve()


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
