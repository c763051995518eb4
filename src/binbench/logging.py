"""Logging setup for binbench.

The console shows stage progress at a level chosen by ``--verbose`` and
``--quiet``.  An optional log file always records DEBUG with timestamps.
Captured output of sub-processes (compiler diagnostics, installer and
hyperfine errors) is logged line by line behind a ``|`` gutter so it
stays readable between binbench's own messages.
"""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER = "binbench"
CONSOLE_FORMAT = "%(levelname)-8s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
OUTPUT_GUTTER = "  | "


def _console_level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the ``binbench`` logger.

    *verbose* wins over *quiet*.  Calling this again replaces the handlers.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(_console_level(verbose, quiet))
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a named child logger under the binbench namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_output(logger: logging.Logger, output: str, *, level: int = logging.DEBUG) -> None:
    """Log captured sub-process *output*, one record per line."""
    for line in output.rstrip("\n").splitlines():
        logger.log(level, "%s%s", OUTPUT_GUTTER, line)
