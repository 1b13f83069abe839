"""VM and template commands for qmctl.

This module provides the commands that inspect a node and run lifecycle
requests (remove, clone) against it.
"""

from __future__ import annotations

import fnmatch

import click

from qmctl.cli.context import Context, pass_context
from qmctl.core.exceptions import QmctlError
from qmctl.core.lifecycle import LifecycleController
from qmctl.models.objects import ObjectKind
from qmctl.models.operations import OperationRequest, ResizeSpec
from qmctl.utils.output import (
    OutputFormat,
    OutputFormatter,
    console,
    create_spinner_progress,
    print_error,
    print_info,
)
from qmctl.utils.signals import deferred_interrupt

node_option = click.option(
    "--node",
    "-n",
    "node_name",
    default=None,
    help="Node to act on (default: default_node, or the only node).",
)

format_option = click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format.",
)

workers_option = click.option(
    "--workers",
    "-w",
    type=click.IntRange(1, 16),
    default=None,
    help="Process this many identifiers in parallel (default from config).",
)


@click.group()
def vm() -> None:
    """Manage VMs and templates on a node.

    Commands for listing objects and for removing or cloning them
    safely.
    """


@vm.command("list")
@node_option
@format_option
@click.option(
    "--kind",
    "-k",
    type=click.Choice([k.value for k in ObjectKind]),
    default=None,
    help="Only show objects of this kind.",
)
@click.option(
    "--pattern",
    "-p",
    default=None,
    help="Filter objects by name glob (e.g., 'test-*').",
)
@pass_context
def vm_list(
    ctx: Context,
    node_name: str | None,
    fmt: str,
    kind: str | None,
    pattern: str | None,
) -> None:
    """List VMs and templates on a node.

    Examples:

        $ qmctl vm list

        $ qmctl vm list --node pve-1 --kind template

        $ qmctl vm list --pattern "ci-*" --format json
    """
    try:
        controller = ctx.init_controller(node_name)
        with create_spinner_progress() as progress:
            progress.add_task("Collecting inventory...", total=None)
            inventory = controller.collector.collect()
    except QmctlError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    objects = list(inventory)
    if kind:
        objects = [o for o in objects if o.kind.value == kind]
    if pattern:
        objects = [o for o in objects if fnmatch.fnmatch(o.name, pattern)]

    if not objects:
        print_info(f"No matching objects on '{inventory.node}'")
        return

    OutputFormatter(OutputFormat(fmt)).print_objects(objects, node=inventory.node)


@vm.command("status")
@click.argument("vmid", type=int)
@node_option
@pass_context
def vm_status(ctx: Context, vmid: int, node_name: str | None) -> None:
    """Show the live run state of a VM.

    VMID is the Proxmox identifier of the VM.

    Examples:

        $ qmctl vm status 100 --node pve-1
    """
    try:
        gateway = ctx.init_gateway(node_name)
        state = gateway.status(vmid)
    except QmctlError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    console.print(f"{vmid}: [{state.color}]{state.symbol} {state.value}[/{state.color}]")


def _execute(
    ctx: Context,
    controller: LifecycleController,
    request: OperationRequest,
    fmt: str,
    confirm: str | None = None,
) -> None:
    """Snapshot, plan, optionally confirm, execute and report a request."""
    formatter = OutputFormatter(OutputFormat(fmt))

    try:
        with create_spinner_progress() as progress:
            progress.add_task("Collecting inventory...", total=None)
            inventory = controller.snapshot(request)
    except QmctlError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    plan = controller.plan(request, inventory)

    if ctx.dry_run:
        formatter.print_plan(plan)
        print_info("Dry run: no changes made")
        return

    if confirm and plan.executable:
        OutputFormatter(OutputFormat.TABLE).print_plan(plan)
        click.confirm(confirm, abort=True)

    with deferred_interrupt() as cancel:
        report = controller.execute(plan, cancel=cancel)

    formatter.print_report(report)
    if report.exit_code:
        raise SystemExit(report.exit_code)


@vm.command("remove")
@click.argument("vmids", nargs=-1, type=int, required=True)
@node_option
@format_option
@workers_option
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Skip confirmation prompt.",
)
@pass_context
def vm_remove(
    ctx: Context,
    vmids: tuple[int, ...],
    node_name: str | None,
    fmt: str,
    workers: int | None,
    yes: bool,
) -> None:
    """Remove VMs and templates.

    VMIDS are the identifiers to remove. Running VMs are stopped first;
    a VM that fails to stop is not destroyed. This action is irreversible.

    Examples:

        $ qmctl vm remove 100 --node pve-1

        $ qmctl vm remove 100 101 9000 --yes
    """
    try:
        request = OperationRequest.remove(vmids)
        controller = ctx.init_controller(node_name, max_workers=workers)
    except QmctlError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    confirm = None if yes else "Destroy these objects? This cannot be undone."
    _execute(ctx, controller, request, fmt, confirm=confirm)


@vm.command("clone")
@click.argument("vmids", nargs=-1, type=int, required=True)
@node_option
@format_option
@workers_option
@click.option("--name", default=None, help="Name for the new VM (single source only).")
@click.option(
    "--resize",
    nargs=2,
    type=(str, str),
    default=None,
    metavar="DISK SIZE",
    help="Resize DISK of the clone to SIZE (e.g. scsi0 20G, or scsi0 +5G).",
)
@click.option(
    "--no-resize",
    is_flag=True,
    help="Ignore the resize configured in defaults.",
)
@click.option(
    "--full/--linked",
    "full",
    default=None,
    help="Full or linked clone of a template (default from config).",
)
@pass_context
def vm_clone(
    ctx: Context,
    vmids: tuple[int, ...],
    node_name: str | None,
    fmt: str,
    workers: int | None,
    name: str | None,
    resize: tuple[str, str] | None,
    no_resize: bool,
    full: bool | None,
) -> None:
    """Clone templates or stopped VMs.

    VMIDS are the clone sources. Each source is cloned once, to the next
    free identifier. When a resize is requested and fails, the clone is
    kept at its original size and reported as failed.

    Examples:

        $ qmctl vm clone 9000 --name web-1

        $ qmctl vm clone 9000 --resize scsi0 20G --linked
    """
    try:
        defaults = ctx.init_config().defaults
        resize_spec: ResizeSpec | dict | None = None
        if resize:
            resize_spec = {"disk": resize[0], "size": resize[1]}
        elif not no_resize and defaults.resize_disk and defaults.resize_size:
            resize_spec = {"disk": defaults.resize_disk, "size": defaults.resize_size}

        request = OperationRequest.clone(
            vmids,
            resize=resize_spec,
            clone_name=name,
            full_clone=defaults.full_clone if full is None else full,
        )
        controller = ctx.init_controller(node_name, max_workers=workers)
    except QmctlError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    _execute(ctx, controller, request, fmt)
