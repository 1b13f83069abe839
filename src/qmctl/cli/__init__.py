"""CLI module for qmctl.

This package contains the Click command definitions for the qmctl CLI.
"""

from qmctl.cli.main import cli

__all__ = ["cli"]
