"""Tests for the lifecycle controller (remove and clone orchestration)."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from qmctl.core.exceptions import CollectionError
from qmctl.core.inventory import InventoryCollector
from qmctl.core.lifecycle import LifecycleController
from qmctl.models.objects import Inventory, ManagedObject, ObjectKind, RunState
from qmctl.models.operations import (
    OperationRequest,
    OutcomeStatus,
    PlannedAction,
)

if TYPE_CHECKING:
    from conftest import FakeGateway


def _controller(gateway: FakeGateway, max_workers: int = 1) -> LifecycleController:
    return LifecycleController(
        gateway, InventoryCollector(gateway, gateway.node.name), max_workers=max_workers
    )


class TestRemove:
    """Tests for remove requests."""

    def test_running_vm_is_stopped_then_destroyed(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """A running VM gets exactly one stop followed by one destroy."""
        report = controller.run(OperationRequest.remove([100]))

        assert fake_gateway.mutations == [("stop", 100), ("destroy_vm", 100)]
        outcome = report.get(100)
        assert outcome is not None
        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.reason == "stopped and destroyed"
        assert 100 not in fake_gateway.records

    def test_stopped_vm_is_destroyed_without_stop(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """A stopped VM is destroyed directly."""
        report = controller.run(OperationRequest.remove([102]))

        assert fake_gateway.mutations == [("destroy_vm", 102)]
        assert report.ok
        assert report.outcomes[0].reason == "destroyed"

    def test_existing_and_missing_ids(self, fake_gateway: FakeGateway) -> None:
        """Remove({100, 999}): 100 is removed, 999 fails as not found."""
        controller = _controller(fake_gateway)

        report = controller.run(OperationRequest.remove([100, 999]))

        assert [o.id for o in report.outcomes] == [100, 999]
        assert report.get(100).status == OutcomeStatus.SUCCEEDED
        assert report.get(999).status == OutcomeStatus.FAILED
        assert report.get(999).reason == "not found"
        assert fake_gateway.calls_for(999) == []
        assert fake_gateway.calls_for(100) == ["stop", "destroy_vm"]
        assert report.exit_code == 1

    def test_template_goes_through_template_path(self, make_gateway: type[FakeGateway]) -> None:
        """Remove({101}) on a template: one template destroy, no stop, no VM destroy."""
        gateway = make_gateway().add(101, template=1, name="ubuntu-tmpl")
        report = _controller(gateway).run(OperationRequest.remove([101]))

        assert gateway.mutations == [("destroy_template", 101)]
        assert report.get(101).status == OutcomeStatus.SUCCEEDED

    def test_stop_failure_prevents_destroy(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """A VM that cannot be stopped is never destroyed."""
        fake_gateway.fail("stop", 100, "timeout")

        report = controller.run(OperationRequest.remove([100]))

        outcome = report.get(100)
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.reason == "stop failed: timeout"
        assert fake_gateway.calls_for(100) == ["stop"]
        assert 100 in fake_gateway.records

    def test_destroy_failure_is_reported(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        fake_gateway.fail("destroy_vm", 102, "storage 'local-lvm' is locked")

        report = controller.run(OperationRequest.remove([102]))

        assert report.get(102).reason == "destroy failed: storage 'local-lvm' is locked"
        assert fake_gateway.calls_for(102) == ["destroy_vm"]

    def test_unknown_object_is_never_touched(self, make_gateway: type[FakeGateway]) -> None:
        """Objects that cannot be classified get no gateway call at all."""
        gateway = make_gateway()
        gateway.add(150, status="running", template=1)
        gateway.add(151, status="migrating")
        gateway.add(152, status="stopped", template="maybe")

        report = _controller(gateway).run(OperationRequest.remove([150, 151, 152]))

        assert gateway.mutations == []
        assert [o.reason for o in report.outcomes] == ["ambiguous object kind"] * 3
        assert all(o.status == OutcomeStatus.FAILED for o in report.outcomes)

    def test_duplicate_ids_are_destroyed_once(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """An identifier listed twice still gets a single outcome and destroy."""
        report = controller.run(OperationRequest.remove([102, 102, 9000, 102]))

        assert [o.id for o in report.outcomes] == [102, 9000]
        assert fake_gateway.mutations.count(("destroy_vm", 102)) == 1
        assert report.ok

    def test_one_failure_does_not_stop_the_batch(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """Failures are isolated per identifier and nothing is rolled back."""
        fake_gateway.fail("stop", 100, "VM quit/powerdown failed")

        report = controller.run(OperationRequest.remove([100, 102, 9000]))

        assert [o.status for o in report.outcomes] == [
            OutcomeStatus.FAILED,
            OutcomeStatus.SUCCEEDED,
            OutcomeStatus.SUCCEEDED,
        ]
        assert set(fake_gateway.records) == {100}

    def test_unknown_run_state_is_stopped_first(self, fake_gateway: FakeGateway) -> None:
        """A VM whose run state is not known to be stopped gets a stop first."""
        inventory = Inventory(
            node="pve-test",
            objects=(ManagedObject(id=102, kind=ObjectKind.VM, run_state=RunState.UNKNOWN),),
        )
        controller = _controller(fake_gateway)

        plan = controller.plan(OperationRequest.remove([102]), inventory)

        assert plan.targets[0].actions == (PlannedAction.STOP, PlannedAction.DESTROY_VM)


class TestClone:
    """Tests for clone requests."""

    def test_clone_template_without_resize(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """Without resize parameters no resize call is made."""
        report = controller.run(OperationRequest.clone([9000]))

        assert fake_gateway.mutations == [("clone", 9000)]
        outcome = report.get(9000)
        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.new_id == 200
        assert outcome.reason == "cloned to 200"

    def test_clone_then_resize(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """The resize targets the new object, never the source."""
        request = OperationRequest.clone([9000], resize={"disk": "scsi0", "size": "20G"})

        report = controller.run(request)

        assert fake_gateway.mutations == [("clone", 9000), ("resize", 200)]
        assert report.get(9000).reason == "cloned to 200, scsi0 resized to 20G"
        assert fake_gateway.disk_layout[200][0].size == "20G"
        assert fake_gateway.disk_layout[9000][0].size == "8G"

    def test_resize_failure_keeps_the_clone(self, make_gateway: type[FakeGateway]) -> None:
        """Clone(101, scsi0, 20G) with a failing resize.

        The outcome is a failure carrying the new id, and a fresh
        snapshot shows the clone with its original disk size.
        """
        gateway = make_gateway(first_free_id=300)
        gateway.add(101, template=1, disks={"scsi0": "10G"})
        gateway.fail("resize", 300, "no space left on device")
        controller = _controller(gateway)

        report = controller.run(
            OperationRequest.clone([101], resize={"disk": "scsi0", "size": "20G"})
        )

        outcome = report.get(101)
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.reason == "resize failed: no space left on device"
        assert outcome.new_id == 300
        assert gateway.mutations == [("clone", 101), ("resize", 300)]

        after = controller.collector.collect(detail_ids=[300])
        clone = after.get(300)
        assert clone is not None
        assert clone.kind == ObjectKind.VM
        assert clone.get_disk("scsi0").size == "10G"

    def test_clone_failure_skips_resize(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        fake_gateway.fail("clone", 9000, "can't lock file '/var/lock/qemu-server/lock-9000.conf'")

        report = controller.run(
            OperationRequest.clone([9000], resize={"disk": "scsi0", "size": "+2G"})
        )

        outcome = report.get(9000)
        assert outcome.reason.startswith("clone failed: can't lock file")
        assert outcome.new_id is None
        assert fake_gateway.mutations == [("clone", 9000)]

    def test_running_source_is_rejected(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        report = controller.run(OperationRequest.clone([100]))

        assert report.get(100).reason == "source is running"
        assert fake_gateway.mutations == []

    def test_unknown_source_run_state_is_rejected(self, fake_gateway: FakeGateway) -> None:
        inventory = Inventory(
            node="pve-test",
            objects=(ManagedObject(id=102, kind=ObjectKind.VM, run_state=RunState.UNKNOWN),),
        )

        plan = _controller(fake_gateway).plan(OperationRequest.clone([102]), inventory)

        assert plan.targets[0].rejection.reason == "source run state unknown"

    def test_unknown_disk_label_is_rejected(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """A resize label missing on the source fails before any clone."""
        report = controller.run(
            OperationRequest.clone([9000], resize={"disk": "virtio0", "size": "20G"})
        )

        assert report.get(9000).reason == "unknown disk label"
        assert fake_gateway.mutations == []

    def test_stopped_vm_source_is_always_full_clone(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """Linked clones only exist for templates."""
        controller.run(OperationRequest.clone([102, 9000], full_clone=False))

        by_source = {c["source"]: c["full"] for c in fake_gateway.clones}
        assert by_source == {102: True, 9000: False}

    def test_clone_name_is_passed(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        controller.run(OperationRequest.clone([9000], clone_name="web-2"))

        assert fake_gateway.clones[0]["name"] == "web-2"
        assert fake_gateway.records[200]["name"] == "web-2"

    def test_snapshot_reads_disks_only_when_resizing(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        controller.snapshot(OperationRequest.clone([9000]))
        assert "disks" not in [op for op, _ in fake_gateway.calls]

        controller.snapshot(
            OperationRequest.clone([9000, 999], resize={"disk": "scsi0", "size": "9G"})
        )
        assert ("disks", 9000) in fake_gateway.calls


class TestPlanning:
    """Tests for plan computation."""

    def test_plan_makes_no_gateway_calls(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        inventory = controller.collector.collect()
        calls_before = list(fake_gateway.calls)

        plan = controller.plan(OperationRequest.remove([100, 102, 9000, 5]), inventory)

        assert fake_gateway.calls == calls_before
        assert [t.describe() for t in plan.targets] == [
            "stop -> destroy_vm",
            "destroy_vm",
            "destroy_template",
            "rejected: not found",
        ]
        assert [t.id for t in plan.executable] == [100, 102, 9000]

    def test_collection_failure_aborts_before_any_mutation(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        fake_gateway.fail("list", None, "ipcc_send_rec[1] failed: Connection refused")

        with pytest.raises(CollectionError, match="Connection refused"):
            controller.run(OperationRequest.remove([100, 102]))

        assert fake_gateway.mutations == []

    def test_invalid_worker_count(self, fake_gateway: FakeGateway) -> None:
        with pytest.raises(ValueError, match="max_workers"):
            _controller(fake_gateway, max_workers=0)


class TestConcurrency:
    """Tests for parallel execution and cancellation."""

    def test_parallel_remove(self, make_gateway: type[FakeGateway]) -> None:
        """With several workers each id is still handled exactly once, in order."""
        gateway = make_gateway()
        for vmid in range(100, 110):
            gateway.add(vmid, status="running" if vmid % 2 else "stopped")

        report = _controller(gateway, max_workers=4).run(
            OperationRequest.remove(list(range(100, 110)))
        )

        assert report.ok
        assert [o.id for o in report.outcomes] == list(range(100, 110))
        assert gateway.records == {}
        for vmid in range(100, 110):
            expected = ["stop", "destroy_vm"] if vmid % 2 else ["destroy_vm"]
            assert gateway.calls_for(vmid) == expected

    def test_cancel_before_start_skips_everything(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        cancel = threading.Event()
        cancel.set()

        report = controller.run(OperationRequest.remove([100, 102, 999]), cancel=cancel)

        assert fake_gateway.mutations == []
        assert report.get(100).status == OutcomeStatus.SKIPPED
        assert report.get(100).reason == "cancelled"
        assert report.get(102).status == OutcomeStatus.SKIPPED
        assert report.get(999).reason == "not found"
        assert report.exit_code == 1

    def test_cancel_mid_run_finishes_current_target(
        self, fake_gateway: FakeGateway, controller: LifecycleController
    ) -> None:
        """An interrupt during 100's stop lets 100 finish and skips the rest."""
        cancel = threading.Event()

        def interrupt(operation: str, vmid: int | None) -> None:
            if operation == "stop":
                cancel.set()

        fake_gateway.on_call = interrupt

        report = controller.run(OperationRequest.remove([100, 102, 9000]), cancel=cancel)

        assert report.get(100).status == OutcomeStatus.SUCCEEDED
        assert report.get(102).status == OutcomeStatus.SKIPPED
        assert report.get(9000).status == OutcomeStatus.SKIPPED
        assert fake_gateway.mutations == [("stop", 100), ("destroy_vm", 100)]
