"""
Logging setup shared by the devtoolbox entry points

Levels resolve as: CLI flag > DEVTOOLBOX_LOG_LEVEL > WARNING.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "DEVTOOLBOX_LOG_LEVEL"

_FMT_FILE = "%(asctime)s %(levelname)-7s %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def resolve_level(verbose: bool = False, debug: bool = False) -> int:
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    return _parse_level(os.environ.get(LOG_LEVEL_ENV))


def setup_logging(level: int = logging.WARNING, console: Optional[Console] = None) -> None:
    """Configure the root logger with a rich handler on stderr"""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=level <= logging.DEBUG,
        show_time=level <= logging.INFO,
        markup=False,
        rich_tracebacks=level <= logging.DEBUG,
    )
    handler.setLevel(level)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def open_file_logger(name: str, path: Path) -> logging.Logger:
    """Return a logger that writes only to ``path``"""
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(logging.INFO)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
    logger.addHandler(handler)
    return logger


def close_file_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def _parse_level(level: Optional[str]) -> int:
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
