"""Rich terminal output utilities for qmctl.

This module renders inventories, plans and operation reports as tables,
JSON or YAML, and provides the small status-line helpers the commands
use.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

import yaml
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from qmctl.models.node import Node
from qmctl.models.objects import ManagedObject, ObjectKind
from qmctl.models.operations import OperationPlan, OperationReport

console = Console()
error_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Supported output formats."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


class OutputFormatter:
    """Handles formatting and outputting data in various formats.

    Args:
        format_type: Output format to use (table, json, yaml).
        output_console: Rich console instance for output.

    Example:
        >>> formatter = OutputFormatter(OutputFormat.TABLE)
        >>> formatter.print_objects(list(inventory))
        >>> formatter.print_report(report)
    """

    def __init__(
        self,
        format_type: OutputFormat = OutputFormat.TABLE,
        output_console: Console | None = None,
    ) -> None:
        self.format_type = format_type
        self.console = output_console or console

    def _print_data(self, data: Any) -> bool:
        """Print JSON/YAML. Returns False when a table is wanted instead."""
        if self.format_type == OutputFormat.JSON:
            self.console.print_json(json.dumps(data, indent=2, default=str))
            return True
        if self.format_type == OutputFormat.YAML:
            self.console.print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
            return True
        return False

    def print_nodes(self, nodes: list[Node], default_node: str | None = None) -> None:
        if self._print_data([n.to_dict() for n in nodes]):
            return

        table = Table(title="Configured Nodes", show_header=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Transport", style="white")
        table.add_column("Hostname", style="white")
        table.add_column("Username", style="yellow")
        table.add_column("Port", justify="right", style="dim")
        table.add_column("PVE node", style="dim")

        for node in nodes:
            name = f"{node.name} *" if node.name == default_node else node.name
            table.add_row(
                name,
                node.transport.value,
                node.hostname,
                node.username or "-",
                str(node.port),
                node.pve_node,
            )

        self.console.print(table)

    def print_objects(self, objects: list[ManagedObject], node: str | None = None) -> None:
        """Print VMs and templates."""
        if self._print_data([o.to_dict() for o in objects]):
            return

        title = f"Objects on {node}" if node else "Objects"
        table = Table(title=title, show_header=True)
        table.add_column("VMID", justify="right", style="cyan", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Kind")
        table.add_column("Status", justify="center")

        for obj in objects:
            kind = Text(obj.kind.value)
            if obj.kind == ObjectKind.UNKNOWN:
                kind.stylize("yellow")
            table.add_row(str(obj.id), obj.name or "-", kind, format_object_state(obj))

        self.console.print(table)

    def print_plan(self, plan: OperationPlan) -> None:
        """Print the actions a request would perform."""
        data = {
            "operation": plan.request.operation.value,
            "node": plan.node,
            "targets": [
                {
                    "id": t.id,
                    "actions": [a.value for a in t.actions],
                    **({"rejected": t.rejection.reason} if t.rejection else {}),
                }
                for t in plan.targets
            ],
        }
        if self._print_data(data):
            return

        table = Table(title=f"Planned {plan.request.operation.value} on {plan.node}")
        table.add_column("VMID", justify="right", style="cyan")
        table.add_column("Plan")
        for target in plan.targets:
            style = "red" if target.rejected else "white"
            table.add_row(str(target.id), Text(target.describe(), style=style))
        self.console.print(table)

    def print_report(self, report: OperationReport) -> None:
        """Print one line per requested identifier, then a summary."""
        if self._print_data(report.to_dict()):
            return

        table = Table(
            title=f"{report.operation.value.title()} results on {report.node}",
            show_header=True,
        )
        table.add_column("VMID", justify="right", style="cyan")
        table.add_column("Result")
        table.add_column("New VMID", justify="right")
        table.add_column("Reason")

        for outcome in report.outcomes:
            status = Text(outcome.status.value.title(), style=outcome.status.color)
            table.add_row(
                str(outcome.id),
                status,
                str(outcome.new_id) if outcome.new_id is not None else "-",
                outcome.reason or "",
            )

        self.console.print(table)
        self.console.print()

        if report.ok:
            print_success(f"All {len(report.outcomes)} object(s) processed successfully")
        else:
            parts = [f"[green]{len(report.succeeded)} succeeded[/green]"]
            parts.append(f"[red]{len(report.failed)} failed[/red]")
            if report.skipped:
                parts.append(f"[yellow]{len(report.skipped)} skipped[/yellow]")
            self.console.print(", ".join(parts))

    def print_dict(self, data: dict[str, Any], title: str | None = None) -> None:
        if self._print_data(data):
            return

        table = Table(title=title, show_header=True)
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="white")
        for key, value in data.items():
            table.add_row(str(key), str(value))
        self.console.print(table)


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def create_spinner_progress() -> Progress:
    """Create a simple spinner progress for indeterminate operations."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def format_object_state(obj: ManagedObject) -> Text:
    """Format an object's run state with color coding."""
    text = Text(obj.status_display)
    if obj.kind == ObjectKind.TEMPLATE:
        text.stylize("blue")
    else:
        text.stylize(obj.run_state.color)
    return text
