"""Logging helpers.

The SDK logs through the standard library. Besides the usual levels it
registers VERBOSE (below DEBUG) for dumping request and response details.
PrefixLogger tags every message with the entity that emitted it, e.g.
"Service(id: abc): Revoking service".
"""

import logging
from typing import Optional

VERBOSE = 5
logging.addLevelName(VERBOSE, "VERBOSE")

ROOT_LOGGER_NAME = "cipherise"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the SDK logger, or one of its children."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class PrefixLogger(logging.LoggerAdapter):
    """LoggerAdapter that prefixes messages with a fixed tag."""

    def __init__(self, prefix: str, logger):
        # Allow nesting: unwrap another adapter down to its logger.
        if isinstance(logger, logging.LoggerAdapter):
            logger = logger.logger
        super().__init__(logger, {})
        self.prefix = prefix

    def process(self, msg, kwargs):
        return f"{self.prefix}: {msg}", kwargs

    def verbose(self, msg, *args, **kwargs):
        self.log(VERBOSE, msg, *args, **kwargs)
