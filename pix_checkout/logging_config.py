"""
logging_config.py — Centralized Logging Configuration for the PIX Checkout Service

Every module logs through the standard library logger returned by `get_logger()`,
so the checkout, status and webhook flows end up in one consistent stream.

Features:
    • Combined console and file logging output
    • Process ID tagging (uvicorn may run several workers)
    • Log level and log file taken from the environment
    • Reduced verbosity for the HTTP client stack (httpx / httpcore)
"""

import logging
import sys

from .config import get_settings


def setup_logging():
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: LOG_LEVEL (default INFO)
        - Log format: timestamp, log level, process ID, logger name and message
        - Output destinations:
            1. File: LOG_FILE (default 'pix_checkout.log')
            2. Console (stdout), Docker compatible
        - Reduced verbosity for httpx and httpcore, which would otherwise log every request line
    """
    settings = get_settings()
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        handlers.insert(0, logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=log_format,
        handlers=handlers,
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger instance for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
