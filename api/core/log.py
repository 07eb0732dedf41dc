"""
Logger factory for the include engine.

The loader and controller take a logger argument instead of reading a
global debug flag; this builds the one they get by default.

A level already set on the `includes` logger (by logging config or an
operator) is left alone. Otherwise the first call picks DEBUG or INFO.
"""

from __future__ import annotations

import logging

INCLUDE_LOGGER_NAME = "includes"


def include_logger(debug: bool = False) -> logging.Logger:
    logger = logging.getLogger(INCLUDE_LOGGER_NAME)
    if logger.level == logging.NOTSET:
        logger.setLevel(logging.DEBUG if debug else logging.INFO)
    return logger
