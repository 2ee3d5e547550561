"""
Logging setup for the part inspection package.

Library modules only create loggers with ``logging.getLogger(__name__)``;
applications call ``setup_logging`` once to attach a console handler.
"""

import logging
import sys
from typing import Union

PACKAGE_LOGGER = "part_inspection"


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Attach a stdout handler to the package logger.

    Calling it again only updates the level.

    Args:
        level: Logging level as int or name ("DEBUG", "INFO", ...).

    Returns:
        The package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    return logger
