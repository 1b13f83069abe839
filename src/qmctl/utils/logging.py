"""Logging configuration for qmctl.

Verbosity is controlled via CLI flags:
- No flag: WARNING only
- -v: INFO level (one line per outcome)
- -vv: DEBUG level (every control-plane command)
- -vvv: DEBUG level + SSH debug output
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_loggers: dict[str, logging.Logger] = {}


def get_log_level(verbosity: int) -> int:
    """Convert verbosity count to log level.

    Args:
        verbosity: Number of -v flags (0-3).

    Returns:
        Logging level constant.
    """
    levels = {
        0: logging.WARNING,
        1: logging.INFO,
        2: logging.DEBUG,
        3: logging.DEBUG,  # Same as 2, but enables paramiko debug
    }
    return levels.get(min(verbosity, 3), logging.WARNING)


def configure_logging(
    verbosity: int = 0,
    log_file: str | Path | None = None,
    log_level: str | None = None,
) -> None:
    """Configure logging for qmctl.

    Sets up a console (stderr) handler and an optional file handler.
    The console handler respects the verbosity level, while the file
    handler always logs at DEBUG level so destructive runs leave a
    complete trail.

    Args:
        verbosity: Number of -v flags from CLI (0-3).
        log_file: Optional path to log file.
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR).
    """
    if log_level:
        level = getattr(logging, log_level.upper(), logging.WARNING)
    else:
        level = get_log_level(verbosity)

    root_logger = logging.getLogger("qmctl")
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    paramiko_logger = logging.getLogger("paramiko")
    if verbosity >= 3:
        paramiko_logger.setLevel(logging.DEBUG)
        paramiko_logger.addHandler(console_handler)
    else:
        paramiko_logger.setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module.

    Creates child loggers under the 'qmctl' namespace.

    Args:
        name: Name of the module (e.g., 'ssh', 'lifecycle').

    Returns:
        Configured logger instance.

    Example:
        >>> logger = get_logger("gateway")
        >>> logger.debug("qm stop 100")
    """
    full_name = f"qmctl.{name}" if not name.startswith("qmctl.") else name

    if full_name not in _loggers:
        _loggers[full_name] = logging.getLogger(full_name)

    return _loggers[full_name]
