"""Centralized logging configuration for HLTB Title Resolver.

Modules log through children of the ``hltbresolver`` logger
(``hltbresolver.<module>``), so a single ``setup_logging`` call configures
everything. Console output goes to stderr because the CLI prints its
results as JSON on stdout.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

__all__ = ["logger", "setup_logging"]

logger = logging.getLogger("hltbresolver")

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Chatty HTTP internals, only shown when debugging
_NOISY_LIBRARIES = ("urllib3", "charset_normalizer")


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
) -> None:
    """Configure the package logger.

    A second call only adjusts the console level; handlers are installed
    once.

    Args:
        level: Console logging level (default: INFO).
        log_file: Optional path to a log file that receives everything
            down to DEBUG.
    """
    logger.setLevel(logging.DEBUG if log_file is not None else level)
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    console = next((h for h in logger.handlers if not isinstance(h, logging.FileHandler)), None)
    if console is not None:
        console.setLevel(level)
        return

    formatter = logging.Formatter(fmt=_FORMAT, datefmt="%H:%M:%S")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
