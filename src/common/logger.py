"""
Logging setup shared by the console modules.
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LEVEL = "INFO"


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a logger with the console's standard handler attached.

    Args:
        name: Logger name (usually __name__)
        level: Level name; falls back to CONSOLE_LOG_LEVEL, then INFO

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    level_name = (level or os.environ.get("CONSOLE_LOG_LEVEL") or DEFAULT_LEVEL).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Only attach once per logger
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
