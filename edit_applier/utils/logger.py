"""
Logger setup shared by the backend modules
"""
import logging
import os
import sys


def setup_logger(name: str) -> logging.Logger:
    """
    Create (or return the already configured) logger for a module.

    The level comes from EDIT_APPLIER_LOG_LEVEL and defaults to INFO.

    Args:
        name: logger name

    Returns:
        configured logger
    """
    logger = logging.getLogger(name)

    # Already configured, don't stack handlers
    if logger.handlers:
        return logger

    level = getattr(logging, os.environ.get("EDIT_APPLIER_LOG_LEVEL", "INFO").upper(), logging.INFO)
    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    return logger
