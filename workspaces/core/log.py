"""loguru setup for the command line.

Ordinary commands log warnings and errors only, as ``LEVEL: message`` lines
on stderr next to the command's own output.  At INFO or DEBUG (maintenance
runs under a timer) every line carries a timestamp and its origin.  Records
from stdlib loggers (sqlalchemy, alembic) are forwarded into loguru.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from loguru import logger

COMPACT_FORMAT = "<level>{level}</level>: {message}"
VERBOSE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> <level>{level: <7}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> {message}"
)

QUIET_LOGGERS = ("sqlalchemy.engine", "alembic.runtime.migration")
"""Chatty at INFO; only their warnings are forwarded."""


class _ForwardToLoguru(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # loguru should report the caller of logging.*, not the logging module
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "WARNING", *, sink: TextIO | None = None) -> None:
    """Route all logging to *sink* (default stderr) at *level*.

    Safe to call again; each call replaces the previous configuration.
    """
    level = level.upper()
    verbose = logger.level(level).no < logger.level("WARNING").no

    logger.remove()
    logger.add(sink or sys.stderr, level=level, format=VERBOSE_FORMAT if verbose else COMPACT_FORMAT)

    logging.basicConfig(handlers=[_ForwardToLoguru()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
