"""Node management commands for qmctl.

This module provides CLI commands for managing the Proxmox VE nodes
in the qmctl configuration.
"""

from __future__ import annotations

import click
from pydantic import ValidationError

from qmctl.cli.context import Context, pass_context
from qmctl.core.exceptions import ConfigurationError, QmctlError
from qmctl.core.runner import LocalRunner
from qmctl.core.ssh import SSHManager
from qmctl.models.node import Node, Transport
from qmctl.utils.output import (
    OutputFormat,
    OutputFormatter,
    print_error,
    print_info,
    print_success,
    print_warning,
)


@click.group()
def nodes() -> None:
    """Manage Proxmox VE nodes.

    Commands for adding, removing, and testing connectivity to the
    nodes whose VMs qmctl manages.
    """


@nodes.command("add")
@click.argument("name")
@click.argument("hostname", required=False, default="localhost")
@click.option(
    "--username",
    "-u",
    default="root",
    help="SSH username (default: root).",
)
@click.option(
    "--ssh-key",
    "-k",
    default=None,
    help="Path to SSH private key.",
)
@click.option(
    "--port",
    "-p",
    default=22,
    type=int,
    help="SSH port (default: 22).",
)
@click.option(
    "--pve-node",
    default=None,
    help="Node name as known to Proxmox (default: NAME).",
)
@click.option(
    "--local",
    is_flag=True,
    help="Run qm/pvesh on this machine instead of over SSH.",
)
@click.option(
    "--default",
    "make_default",
    is_flag=True,
    help="Make this the default node.",
)
@pass_context
def nodes_add(
    ctx: Context,
    name: str,
    hostname: str,
    username: str | None,
    ssh_key: str | None,
    port: int,
    pve_node: str | None,
    local: bool,
    make_default: bool,
) -> None:
    """Add a new node to configuration.

    NAME is a unique identifier for this node.
    HOSTNAME is the IP address or DNS name (not needed with --local).

    Examples:

        $ qmctl nodes add pve-1 192.168.1.10 --pve-node pve1

        $ qmctl nodes add lab pve.lab -u root -k ~/.ssh/id_ed25519

        $ qmctl nodes add here --local --pve-node pve1 --default
    """
    config = ctx.init_config()

    try:
        node = Node(
            name=name,
            hostname=hostname,
            username=username,
            ssh_key=ssh_key,
            port=port,
            pve_node=pve_node or name,
            transport=Transport.LOCAL if local else Transport.SSH,
        )
        config.add_node(node)
        if make_default:
            config.config.default_node = name
            config.save()
        print_success(f"Added node {node.display_name}")

    except ValidationError as e:
        print_error(f"Invalid node: {e.errors()[0]['msg']}")
        raise SystemExit(1) from e
    except ConfigurationError as e:
        print_error(str(e))
        raise SystemExit(1) from e


@nodes.command("list")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format.",
)
@pass_context
def nodes_list(ctx: Context, fmt: str) -> None:
    """List all configured nodes.

    The default node is marked with an asterisk.

    Examples:

        $ qmctl nodes list

        $ qmctl nodes list --format json
    """
    config = ctx.init_config()
    node_list = config.nodes

    if not node_list:
        print_info("No nodes configured. Use 'qmctl nodes add' to add a node.")
        return

    formatter = OutputFormatter(OutputFormat(fmt))
    formatter.print_nodes(node_list, default_node=config.config.default_node)


@nodes.command("remove")
@click.argument("name")
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Skip confirmation prompt.",
)
@pass_context
def nodes_remove(ctx: Context, name: str, yes: bool) -> None:
    """Remove a node from configuration.

    Only the configuration entry is removed; nothing on the node changes.

    Examples:

        $ qmctl nodes remove pve-1

        $ qmctl nodes remove pve-1 --yes
    """
    config = ctx.init_config()

    node = config.get_node(name)
    if node is None:
        print_error(f"Node '{name}' not found")
        raise SystemExit(1)

    if not yes:
        click.confirm(f"Remove node {node.display_name}?", abort=True)

    if config.remove_node(name):
        print_success(f"Removed node '{name}'")
    else:
        print_error(f"Failed to remove node '{name}'")
        raise SystemExit(1)


@nodes.command("default")
@click.argument("name")
@pass_context
def nodes_default(ctx: Context, name: str) -> None:
    """Set the node used when a command names none.

    Examples:

        $ qmctl nodes default pve-1
    """
    config = ctx.init_config()

    if config.get_node(name) is None:
        print_error(f"Node '{name}' not found")
        if config.config.node_names:
            print_warning("Available nodes: " + ", ".join(config.config.node_names))
        raise SystemExit(1)

    config.config.default_node = name
    try:
        config.save()
    except ConfigurationError as e:
        print_error(str(e))
        raise SystemExit(1) from e
    print_success(f"Default node is now '{name}'")


@nodes.command("test")
@click.argument("name", required=False)
@pass_context
def nodes_test(ctx: Context, name: str | None) -> None:
    """Test connectivity to a node and check that qm is available.

    NAME defaults to the default node.

    Examples:

        $ qmctl nodes test pve-1
    """
    try:
        node = ctx.init_node(name)
    except QmctlError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    if node.transport == Transport.LOCAL:
        print_info(f"Checking for qm on {node.display_name}...")
        try:
            result = LocalRunner(default_timeout=10).run(node, "which qm")
        except QmctlError as e:
            print_error(str(e))
            raise SystemExit(1) from e
        success = result.success
        message = (
            f"qm found at {result.stdout.strip()}"
            if success
            else "'qm' was not found on this machine"
        )
    else:
        print_info(f"Testing connection to {node.hostname}:{node.port}...")
        with SSHManager() as ssh:
            success, message = ssh.test_connection(node)

    if success:
        print_success(message)
    else:
        print_error(message)
        raise SystemExit(1)
