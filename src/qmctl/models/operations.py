"""Operation models for qmctl.

Requests describe what the user asked for, plans describe the ordered
control-plane actions the lifecycle controller will issue, and outcomes
and reports record what actually happened to each identifier.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from qmctl.core.exceptions import OperationError, ValidationError
from qmctl.models.objects import ManagedObject

_RESIZE_RE = re.compile(r"^\+?(?P<value>\d+(?:\.\d+)?)(?P<unit>[KMGT])?$", re.IGNORECASE)


class OperationKind(str, Enum):
    """Kind of lifecycle operation."""

    REMOVE = "remove"
    CLONE = "clone"


class ResizeSpec(BaseModel):
    """Disk resize applied to a freshly cloned object.

    Args:
        disk: Disk label on the source object, e.g. ``scsi0``.
        size: New size in Proxmox notation. ``20G`` sets an absolute
            size, ``+5G`` grows the disk by that amount.
    """

    model_config = ConfigDict(frozen=True)

    disk: Annotated[str, Field(min_length=1, description="Disk label")]
    size: Annotated[str, Field(min_length=1, description="New disk size")]

    @field_validator("size")
    @classmethod
    def validate_size(cls, v: str) -> str:
        """Size must parse and be strictly greater than zero."""
        v = v.strip()
        match = _RESIZE_RE.match(v)
        if match is None:
            raise ValueError(f"Invalid size: {v!r}. Use e.g. 20G or +5G")
        if float(match.group("value")) <= 0:
            raise ValueError("Resize size must be greater than zero")
        unit = match.group("unit")
        return v[: -1] + unit.upper() if unit else v

    @property
    def is_relative(self) -> bool:
        return self.size.startswith("+")


class OperationRequest(BaseModel):
    """A validated lifecycle request against one node.

    Args:
        operation: Remove or clone.
        targets: Identifiers to act on, deduplicated in request order.
        resize: Optional disk resize (clone only).
        clone_name: Optional name for the new object (single clone only).
        full_clone: Request a full rather than a linked clone.
    """

    model_config = ConfigDict(frozen=True)

    operation: OperationKind
    targets: tuple[int, ...]
    resize: ResizeSpec | None = None
    clone_name: str | None = None
    full_clone: bool = True

    @field_validator("targets")
    @classmethod
    def dedupe_targets(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if not v:
            raise ValueError("at least one identifier is required")
        return tuple(dict.fromkeys(v))

    @model_validator(mode="after")
    def _clone_only_options(self) -> OperationRequest:
        if self.operation == OperationKind.REMOVE and self.resize is not None:
            raise ValueError("resize parameters only apply to clone")
        if self.clone_name is not None and (
            self.operation != OperationKind.CLONE or len(self.targets) > 1
        ):
            raise ValueError("a clone name requires exactly one clone source")
        return self

    @classmethod
    def build(cls, **kwargs: Any) -> OperationRequest:
        """Construct a request from external input.

        Raises:
            ValidationError: If the request is malformed.
        """
        try:
            return cls.model_validate(kwargs)
        except PydanticValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise ValidationError(f"Invalid request: {messages}") from e

    @classmethod
    def remove(cls, targets: list[int] | tuple[int, ...]) -> OperationRequest:
        return cls.build(operation=OperationKind.REMOVE, targets=tuple(targets))

    @classmethod
    def clone(
        cls,
        targets: list[int] | tuple[int, ...],
        resize: ResizeSpec | dict | None = None,
        clone_name: str | None = None,
        full_clone: bool = True,
    ) -> OperationRequest:
        return cls.build(
            operation=OperationKind.CLONE,
            targets=tuple(targets),
            resize=resize,
            clone_name=clone_name,
            full_clone=full_clone,
        )


class PlannedAction(str, Enum):
    """A single control-plane call in a target's plan."""

    STOP = "stop"
    DESTROY_VM = "destroy_vm"
    DESTROY_TEMPLATE = "destroy_template"
    CLONE = "clone"
    RESIZE = "resize"


class TargetPlan(BaseModel):
    """Ordered actions for one identifier, or the reason it was rejected."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: int
    actions: tuple[PlannedAction, ...] = ()
    rejection: OperationError | None = None
    target: ManagedObject | None = None

    @property
    def rejected(self) -> bool:
        return self.rejection is not None

    def describe(self) -> str:
        if self.rejection is not None:
            return f"rejected: {self.rejection.reason}"
        return " -> ".join(a.value for a in self.actions)


class OperationPlan(BaseModel):
    """Plan for a whole request, one entry per target in request order."""

    model_config = ConfigDict(frozen=True)

    request: OperationRequest
    node: str
    targets: tuple[TargetPlan, ...]

    @property
    def executable(self) -> list[TargetPlan]:
        return [t for t in self.targets if not t.rejected]


class OutcomeStatus(str, Enum):
    """Terminal status of one identifier."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def color(self) -> str:
        colors = {
            OutcomeStatus.SUCCEEDED: "green",
            OutcomeStatus.SKIPPED: "yellow",
            OutcomeStatus.FAILED: "red",
        }
        return colors[self]


class OperationOutcome(BaseModel):
    """Terminal result for one requested identifier.

    Args:
        id: The requested identifier.
        status: Succeeded, skipped or failed.
        reason: Optional human-readable reason.
        new_id: Identifier of the clone, when one was created.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    status: OutcomeStatus
    reason: str | None = None
    new_id: int | None = None

    @classmethod
    def succeeded(
        cls, vmid: int, reason: str | None = None, new_id: int | None = None
    ) -> OperationOutcome:
        return cls(id=vmid, status=OutcomeStatus.SUCCEEDED, reason=reason, new_id=new_id)

    @classmethod
    def skipped(cls, vmid: int, reason: str) -> OperationOutcome:
        return cls(id=vmid, status=OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, error: OperationError) -> OperationOutcome:
        return cls(
            id=error.vmid,
            status=OutcomeStatus.FAILED,
            reason=error.reason,
            new_id=getattr(error, "new_id", None),
        )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class OperationReport(BaseModel):
    """Every outcome of one request, in request order.

    This is the only artifact handed to the reporter. Each requested
    identifier appears exactly once.
    """

    model_config = ConfigDict(frozen=True)

    operation: OperationKind
    node: str
    outcomes: tuple[OperationOutcome, ...]

    def get(self, vmid: int) -> OperationOutcome | None:
        for outcome in self.outcomes:
            if outcome.id == vmid:
                return outcome
        return None

    @property
    def succeeded(self) -> list[OperationOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SUCCEEDED]

    @property
    def failed(self) -> list[OperationOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def skipped(self) -> list[OperationOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SKIPPED]

    @property
    def ok(self) -> bool:
        """True when every outcome succeeded."""
        return all(o.status == OutcomeStatus.SUCCEEDED for o in self.outcomes)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> dict:
        return {
            "operation": self.operation.value,
            "node": self.node,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
