"""Main CLI entry point for qmctl.

This module defines the main CLI group and global options that are
shared across all commands.
"""

from __future__ import annotations

import os
import sys
import traceback
from pathlib import Path

import click
from rich.console import Console

from qmctl import __version__
from qmctl.cli.config_cmd import config
from qmctl.cli.context import Context, pass_context
from qmctl.cli.nodes import nodes
from qmctl.cli.vm import vm
from qmctl.core.config import get_default_config_path
from qmctl.core.exceptions import QmctlError
from qmctl.utils.logging import configure_logging
from qmctl.utils.output import error_console, print_error


def version_callback(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    console = Console()
    console.print(f"qmctl version [cyan]{__version__}[/cyan]")
    ctx.exit()


@click.group()
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v, -vv, -vvv for more).",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Show the planned operations without executing them.",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Show full error tracebacks.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    envvar="QMCTL_CONFIG",
    help=f"Path to config file (default: {get_default_config_path()}).",
)
@click.option(
    "--version",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@pass_context
def cli(
    ctx: Context,
    verbose: int,
    dry_run: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """qmctl - Safely remove and clone VMs on a Proxmox VE node.

    Every command works from one snapshot of the node taken at the
    start. Running VMs are stopped before they are destroyed, templates
    are destroyed through their own path, and objects that cannot be
    classified are never touched.

    Use -v, -vv, or -vvv for increasing levels of verbosity.

    Examples:

        # List VMs and templates

        $ qmctl vm list --node pve-1

        # Remove two VMs, stopping them first if they run

        $ qmctl vm remove 100 101 --node pve-1

        # Clone a template and grow its disk

        $ qmctl vm clone 9000 --name web-1 --resize scsi0 20G
    """
    ctx.verbose = verbose
    ctx.dry_run = dry_run
    ctx.debug = debug

    configure_logging(verbosity=verbose)

    if config_path:
        ctx.config_path = Path(config_path)

    click.get_current_context().call_on_close(ctx.cleanup)


cli.add_command(vm)
cli.add_command(nodes)
cli.add_command(config)


def main() -> None:
    """Main entry point with error handling."""
    try:
        cli(standalone_mode=False)
    except click.exceptions.Exit as e:
        sys.exit(e.exit_code)
    except click.Abort:
        error_console.print("[dim]Aborted[/dim]")
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except QmctlError as e:
        print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        error_console.print("\n[dim]Interrupted[/dim]")
        sys.exit(130)
    except Exception as e:
        if os.environ.get("QMCTL_DEBUG") or "--debug" in sys.argv:
            traceback.print_exc()
        else:
            print_error(f"Unexpected error: {e}")
            error_console.print("[dim]Use --debug for full traceback[/dim]")
        sys.exit(1)


if __name__ == "__main__":
    main()
