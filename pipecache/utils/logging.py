"""Logging setup shared by services embedding the pipeline."""

import logging
import sys
from typing import Optional

from pipecache.utils.config import get_settings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging to stdout.

    Args:
        level: Log level name; defaults to the LOG_LEVEL setting
    """
    level = (level or get_settings().LOG_LEVEL).upper()

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )

    # Quiet down chatty loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
