"""Inventory collection for a node.

The collector takes one consistent snapshot of a node per request. A
snapshot is either complete or not produced at all: safety decisions
need every object as it was at a single instant.
"""

from __future__ import annotations

from collections.abc import Iterable

from qmctl.core.classifier import classify
from qmctl.core.exceptions import CollectionError, GatewayError
from qmctl.core.gateway import ControlPlaneGateway
from qmctl.models.objects import Inventory, ManagedObject, ObjectKind
from qmctl.utils.logging import get_logger

logger = get_logger("inventory")


class InventoryCollector:
    """Builds :class:`Inventory` snapshots from a gateway.

    Args:
        gateway: Gateway for the node.
        node_name: Name recorded on every snapshot.

    Example:
        >>> collector = InventoryCollector(gateway, "pve-1")
        >>> inventory = collector.collect(detail_ids=[9000])
        >>> inventory.get(9000).disk_labels
        frozenset({'scsi0'})
    """

    def __init__(self, gateway: ControlPlaneGateway, node_name: str) -> None:
        self.gateway = gateway
        self.node_name = node_name

    def collect(self, detail_ids: Iterable[int] = ()) -> Inventory:
        """Take a snapshot of the node.

        Args:
            detail_ids: Objects whose disk layout should be included
                (clone sources). Missing or unknown ids are ignored here;
                the controller rejects them.

        Returns:
            A fresh, immutable inventory.

        Raises:
            CollectionError: If the listing or any requested detail
                cannot be obtained or parsed.
        """
        try:
            records = self.gateway.list_objects()
        except GatewayError as e:
            raise CollectionError(
                f"Cannot list objects on {self.node_name}: {e.reason}",
                details={"node": self.node_name},
            ) from e

        if not isinstance(records, list):
            raise CollectionError(
                f"Unexpected listing from {self.node_name}",
                details={"node": self.node_name},
            )

        objects: list[ManagedObject] = []
        for record in records:
            if not isinstance(record, dict):
                raise CollectionError(
                    f"Unparseable record from {self.node_name}: {record!r}",
                    details={"node": self.node_name},
                )
            try:
                objects.append(classify(record))
            except (TypeError, ValueError) as e:
                raise CollectionError(
                    f"Unparseable record from {self.node_name}: {e}",
                    details={"node": self.node_name},
                ) from e

        wanted = set(detail_ids)
        if wanted:
            objects = [self._with_disks(obj) if obj.id in wanted else obj for obj in objects]

        try:
            inventory = Inventory(node=self.node_name, objects=tuple(objects))
        except ValueError as e:
            raise CollectionError(
                f"Inconsistent listing from {self.node_name}: {e}",
                details={"node": self.node_name},
            ) from e

        logger.debug(
            f"Collected {len(inventory)} objects on {self.node_name} "
            f"({len(inventory.vms)} VMs, {len(inventory.templates)} templates)"
        )
        return inventory

    def _with_disks(self, obj: ManagedObject) -> ManagedObject:
        if obj.kind == ObjectKind.UNKNOWN:
            return obj
        try:
            disks = self.gateway.disks(obj.id)
        except GatewayError as e:
            raise CollectionError(
                f"Cannot read disk layout of {obj.id} on {self.node_name}: {e.reason}",
                details={"node": self.node_name, "vmid": obj.id},
            ) from e
        return obj.model_copy(update={"disks": tuple(disks)})
