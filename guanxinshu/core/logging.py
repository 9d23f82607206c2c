"""
Logging setup shared by the API process and the command-line scripts.
"""

import logging
import sys

# Third-party loggers that log every request at INFO.
_CHATTY_LOGGERS = ("google.generativeai", "google.auth", "urllib3", "httpx")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging; SDK chatter stays at WARNING unless debugging."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


__all__ = ["configure_logging"]
