"""
Package logger for the payment service.
Usage:
    from payment_service.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Payment record created")
"""

import logging
import sys
from logging import Logger

LOGGER_NAME = "payment_service"

_logger: Logger = logging.getLogger(LOGGER_NAME)

# Prevent duplicate handlers on uvicorn reload
if not _logger.handlers:
    _logger.setLevel(logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)

    # timestamp | level | module | message
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(formatter)
    _logger.addHandler(console_handler)

    # Keep uvicorn's root configuration from printing every line twice
    _logger.propagate = False

logger = _logger


def configure_logging(level: str) -> None:
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str) -> Logger:
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logger.getChild(name)
