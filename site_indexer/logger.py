# === FILE: site_indexer/logger.py ===
"""Logging for **SiteIndexer**.

All components log through children of one project logger
(``SiteIndexer.crawler``, ``SiteIndexer.storage`` ...), obtained with
:func:`get_logger`. Records go to stderr and, optionally, to a rotating
log file::

      from site_indexer.logger import get_logger
      logger = get_logger("crawler")
      logger.info("Crawl started")

The initial level comes from ``SITE_INDEXER_LOG_LEVEL`` (default ``INFO``);
the CLI calls :func:`configure` again with its ``--log-level``/``--log-file``.
"""
from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Union

DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOGGER_NAME: Final[str] = "SiteIndexer"
LEVEL_ENV: Final[str] = "SITE_INDEXER_LOG_LEVEL"

_LevelT = Union[int, str]


def _formatted(handler: logging.Handler, fmt: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure(
    *,
    level: _LevelT | None = None,
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """(Re)configure the project logger and return it.

    Parameters
    ----------
    level
        Numeric or textual level; *None* reads ``SITE_INDEXER_LOG_LEVEL``.
    log_file
        Extra rotating file output (5 MiB x 3). *None* → stderr only.
    log_format
        Format string for :class:`logging.Formatter`.
    replace_handlers
        *True* – drop handlers installed earlier; *False* – append.
    """
    lg = logging.getLogger(LOGGER_NAME)
    lg.setLevel(level if level is not None else os.environ.get(LEVEL_ENV, "INFO").upper())

    if replace_handlers:
        lg.handlers.clear()

    # stdout is reserved for command output
    lg.addHandler(_formatted(logging.StreamHandler(sys.stderr), log_format))

    if log_file is not None:
        file_handler = RotatingFileHandler(
            filename=str(log_file), maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        lg.addHandler(_formatted(file_handler, log_format))

    lg.propagate = False
    return lg


def get_logger(component: str | None = None) -> logging.Logger:
    """Project logger, or its child ``SiteIndexer.<component>``."""
    if component is None:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{component}")


logger: logging.Logger = configure()

__all__ = ["logger", "configure", "get_logger", "DEFAULT_FORMAT", "LOGGER_NAME", "LEVEL_ENV"]
