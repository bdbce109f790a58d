"""
PdfEbook - Logger Module

This module sets up logging for the application.
"""

import logging

from pdfebook.config import LOG_FORMAT, LOG_LEVEL, LOGGER_NAME


def setup_logger(
    log_level: int | None = None,
    log_format: str | None = None,
    logger_name: str | None = None,
) -> logging.Logger:
    """Set up and configure the application logger.

    Args:
        log_level: Logging level to use (default: LOG_LEVEL from config)
        log_format: Logging format string (default: LOG_FORMAT from config)
        logger_name: Name for the logger (default: LOGGER_NAME from config)

    Returns:
        A configured Logger instance
    """
    logging.basicConfig(level=log_level or LOG_LEVEL, format=log_format or LOG_FORMAT)
    return logging.getLogger(logger_name or LOGGER_NAME)


# Shared application logger
logger = setup_logger()
