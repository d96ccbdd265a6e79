"""
Loguru sink configuration for entry points
Library modules only import `logger`; sinks are configured here.
"""

import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = "<level>{time:YYYY-MM-DD HH:mm:ss}</level> | <level>{level: <8}</level> | {message}"


def setup_logger(level: str = "INFO", sink=None, log_file: Optional[str] = None):
    """
    Replace the default loguru sink

    Args:
        level: Minimum level for the console sink
        sink: Console sink (default stderr)
        log_file: Optional rotating file sink, always at DEBUG
    """
    logger.remove()
    logger.add(sink or sys.stderr, format=LOG_FORMAT, level=level.upper())
    if log_file:
        logger.add(log_file, level="DEBUG", rotation="10 MB", retention=5)
    return logger
