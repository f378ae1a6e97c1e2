"""
Logging configuration.

Every module obtains its logger through ``get_logger(__name__)``. Output goes
to the console, and additionally to a rotating file when ``LOG_DIR`` is set.
"""

import logging
import logging.handlers

from .settings import LOG_DATE_FORMAT, LOG_DIR, LOG_FORMAT, LOG_LEVEL


def get_logger(name: str) -> logging.Logger:
    """
    Create and return a configured logger for the module.

    A logger that already has handlers is returned without reconfiguration.
    The log file is limited to 10 MB with up to 5 previous versions kept.

    Args:
        name (str): Module name, usually passed as __name__.

    Returns:
        logging.Logger: Configured logger ready for use.
    """
    logger = logging.getLogger(name)
    logger.propagate = False

    if logger.handlers:
        return logger

    logger.setLevel(LOG_LEVEL)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if LOG_DIR is not None:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=LOG_DIR / "car_scraper.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
