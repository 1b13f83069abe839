"""Configuration management commands for qmctl.

This module provides CLI commands for viewing and managing
the qmctl configuration file.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import click
import yaml

from qmctl.cli.context import Context, pass_context
from qmctl.core.config import ConfigManager, get_default_config_path
from qmctl.core.exceptions import ConfigurationError
from qmctl.utils.output import console, print_error, print_info, print_success


def _config_path(ctx: Context) -> Path:
    return ctx.config_path or get_default_config_path()


@click.group()
def config() -> None:
    """Manage qmctl configuration.

    Commands for viewing, validating, and initializing the
    configuration file.
    """


@config.command("show")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format.",
)
@pass_context
def config_show(ctx: Context, fmt: str) -> None:
    """Show current configuration.

    Examples:

        $ qmctl config show

        $ qmctl config show --format json
    """
    config_manager = ctx.init_config()
    data = config_manager.to_dict()

    if fmt == "json":
        console.print_json(json.dumps(data, indent=2, default=str))
    else:
        console.print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    console.print(f"\n[dim]Config file: {config_manager.path}[/dim]")


@config.command("validate")
@pass_context
def config_validate(ctx: Context) -> None:
    """Validate the configuration file.

    Checks that the configuration file exists, holds valid YAML with
    the correct structure, and that its default node is configured.

    Examples:

        $ qmctl config validate
    """
    config_path = _config_path(ctx)

    if not config_path.exists():
        print_error(f"Configuration file not found: {config_path}")
        print_info("Run 'qmctl config init' to create a default config.")
        raise SystemExit(1)

    try:
        config_manager = ConfigManager(config_path)
        default_node = config_manager.config.default_node
        if default_node and config_manager.get_node(default_node) is None:
            raise ConfigurationError(f"default_node '{default_node}' is not a configured node")
    except ConfigurationError as e:
        print_error(f"Invalid configuration: {e}")
        raise SystemExit(1) from e

    defaults = config_manager.defaults
    print_success(f"Configuration is valid: {config_path}")
    console.print(f"  Nodes: {len(config_manager.nodes)}")
    console.print(f"  Default node: {default_node or '-'}")
    console.print(f"  Timeout: {defaults.timeout}s")
    console.print(f"  Workers: {defaults.max_workers}")
    console.print(f"  Clone mode: {'full' if defaults.full_clone else 'linked'}")
    if defaults.resize_disk:
        console.print(f"  Resize after clone: {defaults.resize_disk} to {defaults.resize_size}")
    console.print(f"  Log Level: {config_manager.config.logging.level}")


@config.command("init")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration.",
)
@pass_context
def config_init(ctx: Context, force: bool) -> None:
    """Create a default configuration file.

    Creates an example configuration with one SSH node, one local node
    and default values.

    Examples:

        $ qmctl config init

        $ qmctl config init --force
    """
    config_path = _config_path(ctx)

    if config_path.exists() and not force:
        print_error(f"Configuration already exists: {config_path}")
        print_info("Use --force to overwrite.")
        raise SystemExit(1)

    try:
        path = ConfigManager.create_example_config(config_path)
    except OSError as e:
        print_error(f"Failed to create configuration: {e}")
        raise SystemExit(1) from e

    print_success(f"Created configuration at: {path}")
    print_info("Edit this file to add your nodes and customize settings.")


@config.command("path")
@pass_context
def config_path(ctx: Context) -> None:
    """Show the configuration file path.

    Examples:

        $ qmctl config path
    """
    path = _config_path(ctx)
    console.print(str(path))

    if path.exists():
        console.print("[dim](file exists)[/dim]")
    else:
        console.print("[dim](file does not exist)[/dim]")


@config.command("edit")
@click.option(
    "--editor",
    "-e",
    envvar="EDITOR",
    default="vi",
    help="Editor to use (default: $EDITOR or vi).",
)
@pass_context
def config_edit(ctx: Context, editor: str) -> None:
    """Open configuration file in editor.

    Creates the file from the example if it doesn't exist, and
    validates it after the editor exits.

    Examples:

        $ qmctl config edit

        $ EDITOR=nano qmctl config edit
    """
    path = _config_path(ctx)

    if not path.exists():
        print_info(f"Creating new configuration at: {path}")
        ConfigManager.create_example_config(path)

    try:
        subprocess.run([editor, str(path)], check=True)
    except subprocess.CalledProcessError as e:
        print_error(f"Editor exited with error: {e}")
        raise SystemExit(1) from e
    except FileNotFoundError as e:
        print_error(f"Editor not found: {editor}")
        print_info("Set the EDITOR environment variable or use --editor")
        raise SystemExit(1) from e

    try:
        ConfigManager(path)
        print_success("Configuration is valid")
    except ConfigurationError as e:
        print_error(f"Configuration may be invalid: {e}")
        raise SystemExit(1) from e
