"""Logging setup for feed_relay."""

import logging
import sys

from feed_relay.config import ServerConfig


LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

logger = logging.getLogger("feed_relay")


def setup_logging(config: ServerConfig) -> logging.Logger:
    """Attach a stderr handler to the feed_relay logger.

    Calling this more than once replaces the handler instead of stacking them.
    Logs go to stderr so they never mix with a STDIO transport.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(config.log_level)
    logger.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger
