"""
Run the todo sync API server.

Usage:
    python -m todosync

Host, port, backend and log level come from the environment (see settings.py).
"""
from __future__ import annotations

import logging

import uvicorn

from .settings import get_settings


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logging.basicConfig(level=getattr(logging, level, logging.INFO), handlers=[handler])


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logging.getLogger(__name__).info(
        "Starting todo sync API on %s:%d (backend=%s)",
        settings.host,
        settings.port,
        settings.persistence_backend,
    )
    uvicorn.run(
        "todosync.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
