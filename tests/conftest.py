"""Pytest configuration and fixtures for qmctl tests.

This module provides shared fixtures for testing qmctl components
including an in-memory Proxmox node, sample configurations, and test
data.
"""

from __future__ import annotations

import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest
import yaml

from qmctl.core.config import ConfigManager
from qmctl.core.exceptions import GatewayError
from qmctl.core.inventory import InventoryCollector
from qmctl.core.lifecycle import LifecycleController
from qmctl.core.ssh import CommandResult
from qmctl.models.node import Node, Transport
from qmctl.models.objects import DiskInfo, RunState

if TYPE_CHECKING:
    from collections.abc import Generator

    from click.testing import CliRunner

READ_ONLY_CALLS = {"list", "status", "disks"}


class FakeGateway:
    """In-memory stand-in for a Proxmox node.

    Behaves like ``qm`` where it matters for safety: destroying a running
    VM or a missing id fails, and every call is recorded in ``calls`` as
    ``(operation, vmid)`` in the order it was made.
    """

    def __init__(self, node: Node | None = None, first_free_id: int = 200) -> None:
        self.node = node or Node(name="pve-test", hostname="10.0.0.5", pve_node="pve")
        self.records: dict[int, dict[str, Any]] = {}
        self.disk_layout: dict[int, list[DiskInfo]] = {}
        self.calls: list[tuple[str, int | None]] = []
        self.clones: list[dict[str, Any]] = []
        self.failures: dict[tuple[str, int | None], str] = {}
        self.on_call: Callable[[str, int | None], None] | None = None
        self.next_vmid = first_free_id
        self._lock = threading.Lock()

    def add(
        self,
        vmid: int,
        status: str = "stopped",
        template: Any = None,
        name: str | None = None,
        disks: dict[str, str] | None = None,
    ) -> FakeGateway:
        record: dict[str, Any] = {"vmid": vmid, "name": name or f"vm-{vmid}", "status": status}
        if template is not None:
            record["template"] = template
        self.records[vmid] = record
        self.disk_layout[vmid] = [
            DiskInfo(label=label, volume=f"local-lvm:vm-{vmid}-disk-{i}", size=size)
            for i, (label, size) in enumerate((disks or {"scsi0": "8G"}).items())
        ]
        return self

    def fail(self, operation: str, vmid: int | None, reason: str) -> FakeGateway:
        self.failures[(operation, vmid)] = reason
        return self

    @property
    def mutations(self) -> list[tuple[str, int | None]]:
        """Calls that change the node."""
        return [c for c in self.calls if c[0] not in READ_ONLY_CALLS]

    def calls_for(self, vmid: int) -> list[str]:
        return [op for op, target in self.calls if target == vmid]

    def _enter(self, operation: str, vmid: int | None) -> None:
        with self._lock:
            self.calls.append((operation, vmid))
        if self.on_call is not None:
            self.on_call(operation, vmid)
        reason = self.failures.get((operation, vmid))
        if reason is not None:
            raise GatewayError(operation, reason, vmid)

    def _existing(self, operation: str, vmid: int) -> dict[str, Any]:
        record = self.records.get(vmid)
        if record is None:
            raise GatewayError(
                operation, f"Configuration file 'qemu-server/{vmid}.conf' does not exist", vmid
            )
        return record

    def list_objects(self) -> list[dict[str, Any]]:
        self._enter("list", None)
        return [dict(r) for r in self.records.values()]

    def status(self, vmid: int) -> RunState:
        self._enter("status", vmid)
        return RunState(self._existing("status", vmid)["status"])

    def stop(self, vmid: int) -> None:
        self._enter("stop", vmid)
        self._existing("stop", vmid)["status"] = "stopped"

    def destroy_vm(self, vmid: int) -> None:
        self._enter("destroy_vm", vmid)
        if self._existing("destroy", vmid)["status"] == "running":
            raise GatewayError("destroy", f"VM {vmid} is running - destroy failed", vmid)
        del self.records[vmid]

    def destroy_template(self, vmid: int) -> None:
        self._enter("destroy_template", vmid)
        self._existing("destroy", vmid)
        del self.records[vmid]

    def clone(self, source_id: int, name: str | None = None, full: bool = True) -> int:
        self._enter("clone", source_id)
        self._existing("clone", source_id)
        with self._lock:
            new_id = self.next_vmid
            self.next_vmid += 1
        self.records[new_id] = {
            "vmid": new_id,
            "name": name or f"copy-of-{source_id}",
            "status": "stopped",
        }
        self.disk_layout[new_id] = [
            DiskInfo(label=d.label, volume=f"local-lvm:vm-{new_id}-disk-{i}", size=d.size)
            for i, d in enumerate(self.disk_layout.get(source_id, []))
        ]
        self.clones.append({"source": source_id, "new_id": new_id, "name": name, "full": full})
        return new_id

    def resize(self, vmid: int, disk: str, size: str) -> None:
        self._enter("resize", vmid)
        self._existing("resize", vmid)
        layout = self.disk_layout[vmid]
        for i, d in enumerate(layout):
            if d.label == disk:
                layout[i] = d.model_copy(update={"size": size})
                return
        raise GatewayError("resize", f"disk '{disk}' does not exist", vmid)

    def disks(self, vmid: int) -> list[DiskInfo]:
        self._enter("disks", vmid)
        self._existing("config", vmid)
        return list(self.disk_layout[vmid])


@pytest.fixture
def sample_node() -> Node:
    """Create a sample Node for testing."""
    return Node(
        name="pve-1",
        hostname="192.168.1.10",
        username="root",
        port=22,
        ssh_key="~/.ssh/id_ed25519",
        pve_node="pve1",
    )


@pytest.fixture
def sample_nodes() -> list[Node]:
    """Create a list of sample nodes for testing."""
    return [
        Node(
            name="pve-1",
            hostname="192.168.1.10",
            username="root",
            ssh_key="~/.ssh/id_ed25519",
            pve_node="pve1",
        ),
        Node(
            name="pve-2",
            hostname="192.168.1.11",
            username="root",
            pve_node="pve2",
        ),
    ]


@pytest.fixture
def local_node() -> Node:
    return Node(name="here", pve_node="pve", transport=Transport.LOCAL)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """A node with a running VM, a stopped VM and a template.

    - 100: running VM
    - 102: stopped VM
    - 9000: template with a single 8G scsi0 disk
    """
    gateway = FakeGateway()
    gateway.add(100, status="running", name="web-1")
    gateway.add(102, status="stopped", name="db-1", disks={"scsi0": "16G", "scsi1": "100G"})
    gateway.add(9000, status="stopped", template=1, name="debian-12-tmpl")
    return gateway


@pytest.fixture
def make_gateway() -> type[FakeGateway]:
    """The fake node class, for tests that build their own layout."""
    return FakeGateway


@pytest.fixture
def collector(fake_gateway: FakeGateway) -> InventoryCollector:
    return InventoryCollector(fake_gateway, fake_gateway.node.name)


@pytest.fixture
def controller(fake_gateway: FakeGateway, collector: InventoryCollector) -> LifecycleController:
    """Sequential controller driving the fake node."""
    return LifecycleController(fake_gateway, collector)


@pytest.fixture
def temp_config_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config_data(sample_nodes: list[Node]) -> dict:
    """Create sample configuration data."""
    return {
        "nodes": [n.to_dict() for n in sample_nodes],
        "default_node": "pve-1",
        "defaults": {
            "timeout": 300,
            "max_workers": 1,
            "full_clone": True,
            "purge": True,
        },
        "logging": {
            "level": "INFO",
        },
    }


@pytest.fixture
def temp_config_file(temp_config_dir: Path, sample_config_data: dict) -> Path:
    """Create a temporary config file with sample data."""
    config_path = temp_config_dir / "config.yaml"
    with config_path.open("w") as f:
        yaml.safe_dump(sample_config_data, f)
    return config_path


@pytest.fixture
def config_manager(temp_config_file: Path) -> ConfigManager:
    """Create a ConfigManager with a temporary config file."""
    return ConfigManager(temp_config_file)


@pytest.fixture
def mock_runner() -> MagicMock:
    """A command runner whose every command succeeds with empty output."""
    runner = MagicMock()
    runner.run.return_value = CommandResult(
        stdout="", stderr="", exit_code=0, node="pve-1", command=""
    )
    return runner


@pytest.fixture
def mock_ssh_client() -> MagicMock:
    """Create a mocked Paramiko SSH client."""
    client = MagicMock()
    transport = MagicMock()
    transport.is_active.return_value = True
    client.get_transport.return_value = transport

    stdout = MagicMock()
    stdout.read.return_value = b"output"
    stdout.channel.recv_exit_status.return_value = 0

    stderr = MagicMock()
    stderr.read.return_value = b""

    client.exec_command.return_value = (MagicMock(), stdout, stderr)

    return client


@pytest.fixture
def pvesh_qemu_json() -> str:
    """Sample output of 'pvesh get /nodes/pve1/qemu --output-format json'."""
    return """[
        {"vmid": 100, "name": "web-1", "status": "running", "cpus": 2, "maxmem": 4294967296},
        {"vmid": 101, "name": "db-1", "status": "stopped", "cpus": 4, "maxmem": 8589934592},
        {"vmid": 9000, "name": "debian-12-tmpl", "status": "stopped", "template": 1}
    ]"""


@pytest.fixture
def qm_config_output() -> str:
    """Sample output of 'qm config 9000'."""
    return "\n".join(
        [
            "boot: order=scsi0;ide2;net0",
            "cores: 2",
            "efidisk0: local-lvm:base-9000-disk-0,efitype=4m,size=4M",
            "ide2: local:iso/debian-12.iso,media=cdrom,size=628M",
            "memory: 2048",
            "name: debian-12-tmpl",
            "net0: virtio=BC:24:11:2E:4A:01,bridge=vmbr0",
            "scsi0: local-lvm:base-9000-disk-1,iothread=1,size=8G",
            "scsihw: virtio-scsi-single",
            "template: 1",
            "unused0: local-lvm:vm-9000-disk-2",
        ]
    )


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    from click.testing import CliRunner

    return CliRunner()
