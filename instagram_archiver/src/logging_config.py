"""Loguru sink setup for the archiver"""

import sys

from loguru import logger

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


def configure_logging(debug: bool = False) -> None:
    """Replace loguru's default sink with one at INFO, or DEBUG in debug mode"""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO", format=LOG_FORMAT)
