"""
Logging setup for the dashboard API and its helper scripts.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs every request line at INFO, which includes bot tokens in Telegram URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["configure_logging"]
