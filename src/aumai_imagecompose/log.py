"""Logging setup for the command line."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

__all__ = [
    "LOGGER_NAME",
    "init_logging",
]

LOGGER_NAME = "aumai_imagecompose"


def init_logging(
    *,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Console output is INFO (DEBUG when *verbose*).  When *log_dir* is given a
    full DEBUG trace is also written to a timestamped file there.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        fh = logging.FileHandler(log_dir / f"{LOGGER_NAME}-{ts}.log")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)
        logger.debug("log_file=%s", fh.baseFilename)

    return logger
