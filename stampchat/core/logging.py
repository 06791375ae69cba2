# stampchat/core/logging.py

import logging
import os
import sys


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Client libraries that log every RPC / watch heartbeat at INFO
NOISY_LOGGERS = (
    "google.api_core",
    "google.auth",
    "google.cloud.firestore",
    "google.cloud.firestore_v1.watch",
    "redis",
    "markdown",
    "uvicorn.access",
)


def setup_logging() -> None:
    """
    Configure application-wide logging.

    - Root level from LOG_LEVEL (default INFO)
    - One stdout handler, so the container runtime collects the logs
    - Store client libraries raised to WARNING
    """
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

    # Uvicorn may have configured the root logger already
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Usage:
        from stampchat.core.logging import get_logger

        logger = get_logger(__name__)
        logger.info("Room opened")
    """
    return logging.getLogger(name)
