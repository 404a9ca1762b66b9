#!/usr/bin/env python3
"""
logging_setup.py
================
Configures the root logger with a console handler and a rotating file
handler (``roadreport.log``, 1 MB, 2 backups).

Call :func:`setup_logging` once at startup before the simulation is built.
"""

import logging
from logging.handlers import RotatingFileHandler

from config import CAR_DEBUG_LOG_FILE, LOG_FILE


def setup_logging(level: int = logging.INFO, car_debug: bool = False) -> None:
    """Apply a unified log format to both console and file output.

    Parameters
    ----------
    level : int
        Minimum severity level (e.g. ``logging.DEBUG``, ``logging.INFO``).
    car_debug : bool
        Also write every per-message decision of the ``car`` logger to a
        dedicated rotating debug file.
    """
    root = logging.getLogger()
    root.setLevel(level)

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    ch.setLevel(level)

    fh = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=2)
    fh.setFormatter(fmt)
    fh.setLevel(level)

    root.handlers.clear()
    root.addHandler(ch)
    root.addHandler(fh)

    if not car_debug:
        return

    # ── Dedicated debug file for reception / rebroadcast decisions ────
    car_logger = logging.getLogger("car")
    car_logger.setLevel(logging.DEBUG)
    dfh = RotatingFileHandler(
        CAR_DEBUG_LOG_FILE, maxBytes=5_000_000, backupCount=2
    )
    dfh.setLevel(logging.DEBUG)
    dfh.setFormatter(fmt)
    car_logger.addHandler(dfh)
