"""
utils/logger.py — Project-wide logging configuration
=====================================================
Provides a single `get_logger(name)` factory so every pipeline component
gets a consistently-formatted logger.  Colour codes are only emitted when
stdout is a terminal, so CSV replays piped into files stay readable.

The default level comes from the ``PPG_LOG_LEVEL`` environment variable
(e.g. ``PPG_LOG_LEVEL=DEBUG`` to see per-frame detail).
"""

import logging
import os
import sys

_COLOURS = {
    logging.DEBUG:    "\033[36m",   # cyan
    logging.INFO:     "\033[32m",   # green
    logging.WARNING:  "\033[33m",   # yellow
    logging.ERROR:    "\033[31m",   # red
    logging.CRITICAL: "\033[35m",   # magenta
}
_RESET = "\033[0m"

_BASE_FMT = "%(asctime)s  %(levelname)s  %(name)-18s  %(message)s"
_DATE_FMT = "%H:%M:%S"


class _ColourFormatter(logging.Formatter):
    """Wrap the level tag in ANSI colour when writing to a terminal."""

    def __init__(self, use_colour: bool):
        super().__init__(fmt=_BASE_FMT, datefmt=_DATE_FMT)
        self._use_colour = use_colour

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self._use_colour:
            colour = _COLOURS.get(record.levelno, _RESET)
            record.levelname = f"{colour}{levelname:<8}{_RESET}"
        else:
            record.levelname = f"{levelname:<8}"
        try:
            return super().format(record)
        finally:
            # Other handlers may format the same record
            record.levelname = levelname


def _default_level() -> int:
    name = os.environ.get("PPG_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


# Module-level registry to avoid adding duplicate handlers
_loggers: dict[str, logging.Logger] = {}


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return (or create) a named logger.

    Parameters
    ----------
    name  : str         Component name shown in log lines.
    level : int | None  Minimum severity; defaults to ``PPG_LOG_LEVEL``.
    """
    if name in _loggers:
        return _loggers[name]

    level = _default_level() if level is None else level

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_ColourFormatter(use_colour=sys.stdout.isatty()))
    logger.addHandler(handler)

    _loggers[name] = logger
    return logger
