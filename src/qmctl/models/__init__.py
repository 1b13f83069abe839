"""Data models for qmctl.

This module contains Pydantic models for nodes, hypervisor objects and
lifecycle operations.
"""

from qmctl.models.node import Node, Transport
from qmctl.models.objects import DiskInfo, Inventory, ManagedObject, ObjectKind, RunState
from qmctl.models.operations import (
    OperationKind,
    OperationOutcome,
    OperationPlan,
    OperationReport,
    OperationRequest,
    OutcomeStatus,
    PlannedAction,
    ResizeSpec,
    TargetPlan,
)

__all__ = [
    "DiskInfo",
    "Inventory",
    "ManagedObject",
    "Node",
    "ObjectKind",
    "OperationKind",
    "OperationOutcome",
    "OperationPlan",
    "OperationReport",
    "OperationRequest",
    "OutcomeStatus",
    "PlannedAction",
    "ResizeSpec",
    "RunState",
    "TargetPlan",
    "Transport",
]
