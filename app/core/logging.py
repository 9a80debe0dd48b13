"""
Logging utilities for the FastAPI application and maintenance scripts.

Provides a consistent logging format and keeps chatty client libraries quiet.
"""

import logging
import sys

_NOISY_LOGGERS = ("httpx", "httpcore", "googleapiclient.discovery_cache")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the service's log format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs every request URL at INFO, including OAuth query strings.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
