"""Classification of raw node records into managed objects.

This is the single place where loosely structured listing records are
interpreted. Anything that does not clearly match a VM or a template is
classified as unknown, and unknown objects are never acted upon.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from qmctl.models.objects import ManagedObject, ObjectKind, RunState

_TEMPLATE_MARKERS = {1: True, 0: False, "1": True, "0": False, True: True, False: False}

_VM_STATES = {
    "running": RunState.RUNNING,
    # A paused VM still has a live QEMU process and must be stopped.
    "paused": RunState.RUNNING,
    "stopped": RunState.STOPPED,
}


def _template_flag(raw: Mapping[str, Any]) -> bool | None:
    """True/False for a recognised marker, None for anything else."""
    if "template" not in raw or raw["template"] in (None, ""):
        return False
    marker = raw["template"]
    if isinstance(marker, str):
        marker = marker.strip().lower()
        marker = {"true": True, "false": False}.get(marker, marker)
    try:
        return _TEMPLATE_MARKERS.get(marker)
    except TypeError:
        return None


def parse_vmid(raw: Mapping[str, Any]) -> int:
    """Return the record's VMID.

    Raises:
        ValueError: If the record carries no usable identifier.
    """
    vmid = raw.get("vmid")
    if isinstance(vmid, bool) or vmid is None:
        raise ValueError(f"record has no vmid: {dict(raw)!r}")
    if isinstance(vmid, float) and not vmid.is_integer():
        raise ValueError(f"non-integral vmid {vmid!r}")
    vmid = int(vmid)
    if vmid < 0:
        raise ValueError(f"negative vmid {vmid}")
    return vmid


def classify(raw: Mapping[str, Any]) -> ManagedObject:
    """Map a raw listing record to a :class:`ManagedObject`.

    Deterministic and total over records that carry a VMID:

    - template marker set, not running  -> template (no run state)
    - template marker set, running      -> unknown (contradictory)
    - no template marker, running/paused -> running VM
    - no template marker, stopped       -> stopped VM
    - anything else                     -> unknown

    Args:
        raw: One record from the gateway listing.

    Raises:
        ValueError: If the record has no usable VMID.
    """
    vmid = parse_vmid(raw)
    name = str(raw.get("name") or "")
    status = str(raw.get("status") or "").strip().lower()
    is_template = _template_flag(raw)

    if is_template is None:
        return ManagedObject(id=vmid, kind=ObjectKind.UNKNOWN, name=name)

    if is_template:
        if status == "running":
            return ManagedObject(id=vmid, kind=ObjectKind.UNKNOWN, name=name)
        return ManagedObject(id=vmid, kind=ObjectKind.TEMPLATE, name=name)

    state = _VM_STATES.get(status)
    if state is None:
        return ManagedObject(id=vmid, kind=ObjectKind.UNKNOWN, name=name)
    return ManagedObject(id=vmid, kind=ObjectKind.VM, name=name, run_state=state)
