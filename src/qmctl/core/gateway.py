"""Control-plane gateway for a Proxmox VE node.

The gateway is the only component that talks to the node. The lifecycle
controller depends on the :class:`ControlPlaneGateway` protocol, so a
fake node can stand in for a real one in tests.

:class:`QmGateway` maps each operation onto the node's ``qm`` and
``pvesh`` tools:

    list_objects      pvesh get /nodes/<node>/qemu --output-format json
    status            qm status <id>
    stop              qm stop <id>
    destroy_vm        qm destroy <id> [--purge 1 --destroy-unreferenced-disks 1]
    destroy_template  qm destroy <id> [--purge 1]
    clone             pvesh get /cluster/nextid; qm clone <src> <new> --full 0|1
    resize            qm resize <id> <disk> <size>
    disks             qm config <id>

None of these calls is idempotent: destroying an already destroyed id is
an error, not a no-op.
"""

from __future__ import annotations

import json
import re
import shlex
import threading
from typing import Any, Protocol

from qmctl.core.exceptions import GatewayError, TransportError
from qmctl.core.runner import CommandRunner
from qmctl.core.ssh import CommandResult
from qmctl.models.node import Node
from qmctl.models.objects import DiskInfo, RunState
from qmctl.utils.logging import get_logger
from qmctl.utils.retry import retry_with_backoff

logger = get_logger("gateway")

# Attached disk slots; unusedN entries are detached volumes and cdroms are skipped.
_DISK_KEY_RE = re.compile(r"^(ide|sata|scsi|virtio|efidisk|tpmstate)\d+$")


class ControlPlaneGateway(Protocol):
    """Operations the lifecycle controller may issue against a node.

    Every method is a single blocking attempt that either returns or
    raises :class:`~qmctl.core.exceptions.GatewayError`.
    """

    def list_objects(self) -> list[dict[str, Any]]: ...

    def status(self, vmid: int) -> RunState: ...

    def stop(self, vmid: int) -> None: ...

    def destroy_vm(self, vmid: int) -> None: ...

    def destroy_template(self, vmid: int) -> None: ...

    def clone(self, source_id: int, name: str | None = None, full: bool = True) -> int: ...

    def resize(self, vmid: int, disk: str, size: str) -> None: ...

    def disks(self, vmid: int) -> list[DiskInfo]: ...


def parse_status(output: str) -> RunState:
    """Parse ``qm status`` output such as ``status: running``."""
    _, _, value = output.strip().partition(":")
    try:
        return RunState(value.strip().lower())
    except ValueError:
        return RunState.UNKNOWN


def parse_config_disks(output: str) -> list[DiskInfo]:
    """Extract attached disks from ``qm config`` output.

    Example line::

        scsi0: local-lvm:vm-100-disk-0,iothread=1,size=32G
    """
    disks: list[DiskInfo] = []
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        key = key.strip()
        if not sep or not _DISK_KEY_RE.match(key):
            continue
        parts = [p.strip() for p in value.strip().split(",")]
        options = dict(p.split("=", 1) for p in parts[1:] if "=" in p)
        if options.get("media") == "cdrom":
            continue
        disks.append(
            DiskInfo(label=key, volume=parts[0] or None, size=options.get("size"))
        )
    return disks


def _one_line(text: str) -> str:
    return " ".join(text.split())


class QmGateway:
    """Gateway that drives ``qm``/``pvesh`` on one node.

    Read-only calls (listing, status, config, next id) are retried on
    transport errors. Mutating calls are single attempts: after a timeout
    the node may already have acted, and a second stop or destroy would
    act on an unknown state.

    Args:
        node: The node to act on.
        runner: Delivers command lines to the node (SSH or local).
        timeout: Per-command timeout in seconds.
        purge: Purge VM references and unreferenced disks on destroy.
    """

    def __init__(
        self,
        node: Node,
        runner: CommandRunner,
        timeout: int = 300,
        purge: bool = True,
    ) -> None:
        self.node = node
        self.runner = runner
        self.timeout = timeout
        self.purge = purge
        # nextid allocation and the clone that consumes it must not interleave
        self._clone_lock = threading.Lock()

    def _execute(self, args: list[str]) -> CommandResult:
        return self.runner.run(self.node, shlex.join(args), timeout=self.timeout)

    @retry_with_backoff(max_attempts=3, base_delay=1.0, exceptions=(TransportError,))
    def _query(self, args: list[str]) -> CommandResult:
        return self._execute(args)

    def _call(
        self,
        operation: str,
        args: list[str],
        vmid: int | None = None,
        read_only: bool = False,
    ) -> CommandResult:
        execute = self._query if read_only else self._execute
        try:
            result = execute(args)
        except TransportError as e:
            raise GatewayError(operation, e.message, vmid) from e
        if not result.success:
            raise GatewayError(operation, _one_line(result.error_text), vmid)
        return result

    def list_objects(self) -> list[dict[str, Any]]:
        result = self._call(
            "list",
            ["pvesh", "get", f"/nodes/{self.node.pve_node}/qemu", "--output-format", "json"],
            read_only=True,
        )
        try:
            data = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise GatewayError("list", f"invalid JSON from pvesh: {e}") from e
        if not isinstance(data, list):
            raise GatewayError("list", f"expected a JSON list, got {type(data).__name__}")
        return data

    def status(self, vmid: int) -> RunState:
        result = self._call("status", ["qm", "status", str(vmid)], vmid, read_only=True)
        return parse_status(result.stdout)

    def stop(self, vmid: int) -> None:
        self._call("stop", ["qm", "stop", str(vmid)], vmid)
        logger.info(f"Stopped VM {vmid} on {self.node.name}")

    def destroy_vm(self, vmid: int) -> None:
        args = ["qm", "destroy", str(vmid)]
        if self.purge:
            args += ["--purge", "1", "--destroy-unreferenced-disks", "1"]
        self._call("destroy", args, vmid)
        logger.info(f"Destroyed VM {vmid} on {self.node.name}")

    def destroy_template(self, vmid: int) -> None:
        # Linked clones may still reference the template's base volumes.
        args = ["qm", "destroy", str(vmid)]
        if self.purge:
            args += ["--purge", "1"]
        self._call("destroy", args, vmid)
        logger.info(f"Destroyed template {vmid} on {self.node.name}")

    def next_id(self) -> int:
        result = self._call("nextid", ["pvesh", "get", "/cluster/nextid"], read_only=True)
        text = result.stdout.strip().strip('"')
        try:
            return int(text)
        except ValueError as e:
            raise GatewayError("nextid", f"unexpected output {text!r}") from e

    def clone(self, source_id: int, name: str | None = None, full: bool = True) -> int:
        with self._clone_lock:
            new_id = self.next_id()
            args = ["qm", "clone", str(source_id), str(new_id), "--full", "1" if full else "0"]
            if name:
                args += ["--name", name]
            self._call("clone", args, source_id)
        logger.info(f"Cloned {source_id} to {new_id} on {self.node.name}")
        return new_id

    def resize(self, vmid: int, disk: str, size: str) -> None:
        self._call("resize", ["qm", "resize", str(vmid), disk, size], vmid)
        logger.info(f"Resized {disk} of {vmid} to {size} on {self.node.name}")

    def disks(self, vmid: int) -> list[DiskInfo]:
        result = self._call("config", ["qm", "config", str(vmid)], vmid, read_only=True)
        return parse_config_disks(result.stdout)

    def close(self) -> None:
        close_all = getattr(self.runner, "close_all", None)
        if close_all is not None:
            close_all()
