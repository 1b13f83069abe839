"""Utility modules for qmctl.

This package contains shared utilities for logging, output formatting,
retry logic and interrupt handling.
"""

from qmctl.utils.logging import configure_logging, get_logger
from qmctl.utils.output import OutputFormatter, console
from qmctl.utils.retry import retry_with_backoff

__all__ = [
    "OutputFormatter",
    "configure_logging",
    "console",
    "get_logger",
    "retry_with_backoff",
]
