"""Logging setup for anidbnfo.

Debug output is controlled by the ANIDBNFO_DEBUG environment variable or the
CLI ``--verbose`` flag. Modules log through ``logging.getLogger(__name__)``,
which propagates to the ``anidbnfo`` logger configured here.
"""

import logging
import os
from typing import Optional

DEBUG_ON = os.getenv("ANIDBNFO_DEBUG", "0") == "1"

_logger: Optional[logging.Logger] = None


def setup_logger(verbose: bool = False) -> logging.Logger:
    """Configure and return the package logger (idempotent)."""
    global _logger
    if _logger is not None:
        return _logger
    logger = logging.getLogger("anidbnfo")
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("[%(levelname)s] %(asctime)s %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG if (DEBUG_ON or verbose) else logging.WARNING)
    _logger = logger
    return logger
