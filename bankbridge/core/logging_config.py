"""Centralized logging configuration."""

import logging

from bankbridge.core.config import LOG_LEVEL


def setup_logging() -> None:
    """Configure the root logger and quiet noisy third-party loggers."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        force=True,
    )

    for name in (
        "sqlalchemy.engine",
        "sqlalchemy.pool",
        "urllib3",
        "httpx",
        "httpcore",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)
