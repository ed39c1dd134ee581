"""Logging setup shared by the API process and its background timers."""

import logging

from config import settings

# Capped at WARNING even when LOG_LEVEL is DEBUG
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "urllib3",
)


def setup_logging() -> None:
    """Configure the root logger from settings.LOG_LEVEL.

    Price refreshes and history syncs run on pool and timer threads, so
    the thread name is part of every line.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
