"""Lifecycle controller: plans and executes remove and clone requests.

Given a request and one inventory snapshot, the controller computes for
every target identifier an ordered list of control-plane actions (the
plan) and then executes it against the gateway:

    remove: lookup -> classify gate -> stop (running VMs) -> destroy
    clone:  lookup -> classify gate -> source check -> disk label check
            -> clone -> resize (optional)

Each identifier runs independently. A failure ends that identifier's
sequence only; nothing already done on another identifier is rolled
back. Every gateway call is a single attempt, the next call on the same
identifier starts only after the previous one returned, and an
identifier's sequence is started at most once per request, so no
identifier is ever destroyed twice.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from qmctl.core.exceptions import (
    AmbiguousKindError,
    CloneFailedError,
    DestroyFailedError,
    GatewayError,
    InvalidSourceError,
    NotFoundError,
    OperationError,
    ResizeFailedError,
    StopFailedError,
    UnknownDiskLabelError,
)
from qmctl.core.gateway import ControlPlaneGateway
from qmctl.core.inventory import InventoryCollector
from qmctl.models.objects import Inventory, ManagedObject, ObjectKind, RunState
from qmctl.models.operations import (
    OperationKind,
    OperationOutcome,
    OperationPlan,
    OperationReport,
    OperationRequest,
    OutcomeStatus,
    PlannedAction,
    TargetPlan,
)
from qmctl.utils.logging import get_logger

logger = get_logger("lifecycle")


class _OutcomeLog:
    """Append-only, thread-safe record of terminal outcomes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started: set[int] = set()
        self._outcomes: dict[int, OperationOutcome] = {}

    def claim(self, vmid: int) -> bool:
        """Mark an identifier's sequence as started. False if it already was."""
        with self._lock:
            if vmid in self._started:
                return False
            self._started.add(vmid)
            return True

    def record(self, outcome: OperationOutcome) -> None:
        with self._lock:
            if outcome.id in self._outcomes:
                raise RuntimeError(f"outcome for {outcome.id} already recorded")
            self._outcomes[outcome.id] = outcome

    def get(self, vmid: int) -> OperationOutcome | None:
        with self._lock:
            return self._outcomes.get(vmid)


class LifecycleController:
    """Safe remove/clone orchestration for one node.

    Args:
        gateway: Control-plane gateway for the node.
        collector: Inventory collector for the same node.
        max_workers: Identifiers processed in parallel. 1 runs them
            strictly one after another.

    Example:
        >>> controller = LifecycleController(gateway, InventoryCollector(gateway, "pve-1"))
        >>> report = controller.run(OperationRequest.remove([100, 101]))
        >>> report.exit_code
        0
    """

    def __init__(
        self,
        gateway: ControlPlaneGateway,
        collector: InventoryCollector,
        max_workers: int = 1,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.gateway = gateway
        self.collector = collector
        self.max_workers = max_workers

    # Planning

    def snapshot(self, request: OperationRequest) -> Inventory:
        """Collect the inventory a request needs.

        Clone requests with a resize also collect the disk layout of
        their sources, so the disk label can be checked without another
        gateway call.

        Raises:
            CollectionError: If no complete snapshot can be taken.
        """
        detail_ids: tuple[int, ...] = ()
        if request.operation == OperationKind.CLONE and request.resize is not None:
            detail_ids = request.targets
        return self.collector.collect(detail_ids=detail_ids)

    def plan(self, request: OperationRequest, inventory: Inventory) -> OperationPlan:
        """Compute the ordered actions for every target. Makes no gateway calls."""
        if request.operation == OperationKind.REMOVE:
            targets = [self._plan_remove(vmid, inventory) for vmid in request.targets]
        else:
            targets = [self._plan_clone(vmid, inventory, request) for vmid in request.targets]
        return OperationPlan(request=request, node=inventory.node, targets=tuple(targets))

    def _lookup(self, vmid: int, inventory: Inventory) -> ManagedObject:
        obj = inventory.get(vmid)
        if obj is None:
            raise NotFoundError(vmid)
        if obj.kind == ObjectKind.UNKNOWN:
            raise AmbiguousKindError(vmid)
        return obj

    def _plan_remove(self, vmid: int, inventory: Inventory) -> TargetPlan:
        try:
            obj = self._lookup(vmid, inventory)
        except OperationError as e:
            return TargetPlan(id=vmid, rejection=e)

        if obj.kind == ObjectKind.TEMPLATE:
            actions = (PlannedAction.DESTROY_TEMPLATE,)
        elif obj.run_state == RunState.STOPPED:
            actions = (PlannedAction.DESTROY_VM,)
        else:
            # Stop whenever the VM is not known to be stopped.
            actions = (PlannedAction.STOP, PlannedAction.DESTROY_VM)
        return TargetPlan(id=vmid, actions=actions, target=obj)

    def _plan_clone(
        self, vmid: int, inventory: Inventory, request: OperationRequest
    ) -> TargetPlan:
        try:
            obj = self._lookup(vmid, inventory)
            if obj.kind == ObjectKind.VM and obj.run_state != RunState.STOPPED:
                reason = (
                    "source is running"
                    if obj.run_state == RunState.RUNNING
                    else "source run state unknown"
                )
                raise InvalidSourceError(vmid, reason)
            if request.resize is not None and request.resize.disk not in obj.disk_labels:
                raise UnknownDiskLabelError(vmid, request.resize.disk)
        except OperationError as e:
            return TargetPlan(id=vmid, rejection=e)

        actions = [PlannedAction.CLONE]
        if request.resize is not None:
            actions.append(PlannedAction.RESIZE)
        return TargetPlan(id=vmid, actions=tuple(actions), target=obj)

    # Execution

    def run(
        self,
        request: OperationRequest,
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Snapshot, plan and execute a request.

        Raises:
            CollectionError: If the inventory cannot be collected. No
                mutating call has been made in that case.
        """
        inventory = self.snapshot(request)
        return self.execute(self.plan(request, inventory), cancel=cancel)

    def execute(
        self,
        plan: OperationPlan,
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Execute a plan and report one outcome per requested identifier.

        Args:
            plan: Plan produced by :meth:`plan`.
            cancel: When set, identifiers whose sequence has not started
                are skipped. A sequence already running finishes its
                current gateway call first.
        """
        log = _OutcomeLog()
        cancel = cancel or threading.Event()

        for target in plan.targets:
            if target.rejection is not None:
                log.claim(target.id)
                self._finish(log, OperationOutcome.failed(target.rejection))

        pending = plan.executable
        if self.max_workers == 1 or len(pending) <= 1:
            for target in pending:
                self._run_target(target, plan.request, log, cancel)
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [
                    pool.submit(self._run_target, target, plan.request, log, cancel)
                    for target in pending
                ]
                for future in futures:
                    future.result()

        outcomes = []
        for target in plan.targets:
            outcome = log.get(target.id)
            if outcome is None:
                raise RuntimeError(f"no outcome recorded for {target.id}")
            outcomes.append(outcome)

        return OperationReport(
            operation=plan.request.operation,
            node=plan.node,
            outcomes=tuple(outcomes),
        )

    def _finish(self, log: _OutcomeLog, outcome: OperationOutcome) -> None:
        log.record(outcome)
        if outcome.status == OutcomeStatus.SUCCEEDED:
            logger.info(f"{outcome.id}: {outcome.reason or 'succeeded'}")
        else:
            logger.warning(f"{outcome.id}: {outcome.status.value}: {outcome.reason}")

    def _run_target(
        self,
        target: TargetPlan,
        request: OperationRequest,
        log: _OutcomeLog,
        cancel: threading.Event,
    ) -> None:
        if cancel.is_set():
            if log.claim(target.id):
                self._finish(log, OperationOutcome.skipped(target.id, "cancelled"))
            return
        if not log.claim(target.id):
            return

        try:
            if request.operation == OperationKind.REMOVE:
                outcome = self._remove(target)
            else:
                outcome = self._clone(target, request)
        except OperationError as e:
            outcome = OperationOutcome.failed(e)
        self._finish(log, outcome)

    def _remove(self, target: TargetPlan) -> OperationOutcome:
        vmid = target.id
        for action in target.actions:
            if action == PlannedAction.STOP:
                logger.debug(f"Stopping {vmid} before destroy")
                try:
                    self.gateway.stop(vmid)
                except GatewayError as e:
                    raise StopFailedError(vmid, e.reason) from e
            elif action == PlannedAction.DESTROY_VM:
                try:
                    self.gateway.destroy_vm(vmid)
                except GatewayError as e:
                    raise DestroyFailedError(vmid, e.reason) from e
            elif action == PlannedAction.DESTROY_TEMPLATE:
                try:
                    self.gateway.destroy_template(vmid)
                except GatewayError as e:
                    raise DestroyFailedError(vmid, e.reason) from e
            else:
                raise ValueError(f"unexpected remove action {action}")

        if PlannedAction.STOP in target.actions:
            return OperationOutcome.succeeded(vmid, "stopped and destroyed")
        return OperationOutcome.succeeded(vmid, "destroyed")

    def _clone(self, target: TargetPlan, request: OperationRequest) -> OperationOutcome:
        vmid = target.id
        # Linked clones only exist for templates.
        full = request.full_clone or (
            target.target is not None and target.target.kind == ObjectKind.VM
        )
        new_id: int | None = None

        for action in target.actions:
            if action == PlannedAction.CLONE:
                try:
                    new_id = self.gateway.clone(vmid, name=request.clone_name, full=full)
                except GatewayError as e:
                    raise CloneFailedError(vmid, e.reason) from e
            elif action == PlannedAction.RESIZE and request.resize is not None:
                if new_id is None:
                    raise RuntimeError("resize planned before clone")
                try:
                    self.gateway.resize(new_id, request.resize.disk, request.resize.size)
                except GatewayError as e:
                    # The clone is kept.
                    raise ResizeFailedError(vmid, e.reason, new_id=new_id) from e
            else:
                raise ValueError(f"unexpected clone action {action}")

        reason = f"cloned to {new_id}"
        if request.resize is not None:
            reason += f", {request.resize.disk} resized to {request.resize.size}"
        return OperationOutcome.succeeded(vmid, reason, new_id=new_id)
