# backend/logic/logging_utils.py
"""
Logging for Ledger Insight

Modules call get_logger(__name__) and log freely; nothing is printed until
either the API lifespan calls setup_logging() or a logger is first used
without any configuration, in which case a plain stdout handler is
installed once on the root logger.

The log file (logs/ledger_insight.log) rotates by size so a long-running
API server never grows it unbounded.
"""

import logging
import sys
import time
from pathlib import Path
from logging.handlers import RotatingFileHandler
from functools import wraps
from typing import Callable, Any, Optional

LOG_FILE_NAME = "ledger_insight.log"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"

_configured = False


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_dir: str = "logs",
    max_bytes: int = 5_000_000,
    backup_count: int = 3
) -> Optional[Path]:
    """
    Configure the root logger: stdout always, a rotating file optionally.

    Calling it again replaces the handlers from the previous call.

    Args:
        level: Minimum log level
        log_to_file: Also write to log_dir/ledger_insight.log
        log_dir: Directory for the log file (created when missing)
        max_bytes: Size at which the file rotates
        backup_count: Rotated files to keep

    Returns:
        Path of the log file, or None when logging to console only
    """
    global _configured

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(console)
    _configured = True

    if not log_to_file:
        return None

    log_path = Path(log_dir) / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(file_handler)
    return log_path


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a module (pass __name__).

    Falls back to a stdout handler on the root logger when neither
    setup_logging() nor the host application configured logging.
    """
    global _configured
    if not _configured and not logging.getLogger().handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    _configured = True
    return logging.getLogger(name)


# ==============================================================================
# STAGE TIMING
# ==============================================================================

def timed(func: Callable) -> Callable:
    """
    Log how long an analysis stage took, and how many items it returned
    when the result has a length (samples, relation maps, row lists).

    Usage:
        @timed
        def smart_sample(...):
            ...
    """
    @wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        start = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = time.perf_counter() - start

        logger = logging.getLogger(func.__module__)
        if hasattr(result, "__len__"):
            logger.debug(f"{func.__name__}: {len(result)} items in {elapsed:.3f}s")
        else:
            logger.debug(f"{func.__name__}: done in {elapsed:.3f}s")
        return result
    return wrapper
