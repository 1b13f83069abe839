"""Object models for qmctl.

This module defines the hypervisor-visible objects of a node (VMs and
templates) and the inventory snapshot that holds them.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator

_SIZE_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?)(?P<unit>[KMGT])?$", re.IGNORECASE)
_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}


def parse_size(text: str) -> int:
    """Convert a Proxmox size string to bytes.

    Args:
        text: Size such as ``"32G"``, ``"512M"`` or ``"1073741824"``.

    Returns:
        Size in bytes.

    Raises:
        ValueError: If the text is not a size.
    """
    match = _SIZE_RE.match(text.strip())
    if match is None:
        raise ValueError(f"Invalid size: {text!r}")
    unit = (match.group("unit") or "").upper()
    return int(float(match.group("value")) * _UNITS[unit])


class ObjectKind(str, Enum):
    """Classification of a hypervisor object."""

    VM = "vm"
    TEMPLATE = "template"
    UNKNOWN = "unknown"


class RunState(str, Enum):
    """Run state of a VM. Templates never run."""

    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"

    @property
    def color(self) -> str:
        """Rich color for this state."""
        colors = {
            RunState.RUNNING: "green",
            RunState.STOPPED: "red",
            RunState.UNKNOWN: "dim",
        }
        return colors.get(self, "white")

    @property
    def symbol(self) -> str:
        """Status symbol for this state."""
        symbols = {
            RunState.RUNNING: "●",
            RunState.STOPPED: "○",
            RunState.UNKNOWN: "-",
        }
        return symbols.get(self, "?")


class DiskInfo(BaseModel):
    """A disk attached to a VM or template.

    Args:
        label: Bus/slot label, e.g. ``scsi0`` or ``virtio1``.
        volume: Storage volume id, e.g. ``local-lvm:vm-100-disk-0``.
        size: Size text as reported by the node, e.g. ``32G``.
    """

    model_config = ConfigDict(frozen=True)

    label: Annotated[str, Field(min_length=1)]
    volume: str | None = None
    size: str | None = None

    @property
    def size_bytes(self) -> int | None:
        """Disk size in bytes, or None when unknown."""
        if self.size is None:
            return None
        try:
            return parse_size(self.size)
        except ValueError:
            return None


class ManagedObject(BaseModel):
    """One VM or template on a node, as seen in a single snapshot.

    Instances are immutable. ``kind`` is always derived by the classifier
    and never supplied by a user.

    Args:
        id: Proxmox VMID, unique within a snapshot.
        kind: VM, template or unknown.
        name: Display name (not unique).
        run_state: Running/stopped for VMs, always unknown for templates.
        disks: Disk layout, or None when it was not collected.
    """

    model_config = ConfigDict(frozen=True)

    id: Annotated[int, Field(ge=0)]
    kind: ObjectKind
    name: str = ""
    run_state: RunState = RunState.UNKNOWN
    disks: tuple[DiskInfo, ...] | None = None

    @model_validator(mode="after")
    def _templates_do_not_run(self) -> ManagedObject:
        if self.kind == ObjectKind.TEMPLATE and self.run_state != RunState.UNKNOWN:
            raise ValueError("a template has no run state")
        return self

    @property
    def is_running(self) -> bool:
        return self.kind == ObjectKind.VM and self.run_state == RunState.RUNNING

    @property
    def disk_labels(self) -> frozenset[str]:
        """Labels of all known disks (empty when not collected)."""
        return frozenset(d.label for d in self.disks or ())

    def get_disk(self, label: str) -> DiskInfo | None:
        for disk in self.disks or ():
            if disk.label == label:
                return disk
        return None

    @property
    def status_display(self) -> str:
        """Formatted status string with symbol, e.g. "● running"."""
        if self.kind == ObjectKind.TEMPLATE:
            return "template"
        return f"{self.run_state.symbol} {self.run_state.value}"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = self.model_dump(mode="json", exclude_none=True)
        if self.disks is not None:
            data["disks"] = [d.model_dump(exclude_none=True) for d in self.disks]
        return data


class Inventory(BaseModel):
    """Point-in-time snapshot of every object on one node.

    An inventory is built once per request and never updated in place;
    collect a new one to observe changes.

    Args:
        node: Name of the node the snapshot was taken from.
        objects: Objects in the order the node listed them.
        collected_at: When the snapshot was taken.
    """

    model_config = ConfigDict(frozen=True)

    node: str
    objects: tuple[ManagedObject, ...] = ()
    collected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _unique_ids(self) -> Inventory:
        seen: set[int] = set()
        for obj in self.objects:
            if obj.id in seen:
                raise ValueError(f"duplicate object id {obj.id}")
            seen.add(obj.id)
        return self

    def get(self, vmid: int) -> ManagedObject | None:
        """Look up an object by id."""
        for obj in self.objects:
            if obj.id == vmid:
                return obj
        return None

    def __contains__(self, vmid: object) -> bool:
        return any(obj.id == vmid for obj in self.objects)

    def __iter__(self) -> Iterator[ManagedObject]:  # type: ignore[override]
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    @property
    def ids(self) -> list[int]:
        return [obj.id for obj in self.objects]

    @property
    def vms(self) -> list[ManagedObject]:
        return [obj for obj in self.objects if obj.kind == ObjectKind.VM]

    @property
    def templates(self) -> list[ManagedObject]:
        return [obj for obj in self.objects if obj.kind == ObjectKind.TEMPLATE]
