"""Logging setup for the attribution engine.

WHAT: Sets the package logger level from the verbose_logging flag.
WHY: Hosts opt into detailed resolution logs (raw API responses, store
     decisions) without reconfiguring their own root logger.
"""

import logging

PACKAGE_LOGGER = "affiliate_attribution"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Configure the package logger.

    Args:
        verbose: DEBUG when True, INFO otherwise

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Only attach a handler if the host hasn't configured logging at all
    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
