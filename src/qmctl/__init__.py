"""qmctl - safely remove and clone VMs and templates on a Proxmox VE node.

This package provides a command-line interface that takes a snapshot of
a node's VMs and templates, plans a safe sequence of ``qm`` operations
(stop before destroy, templates destroyed through their own path,
unclassifiable objects never touched) and executes it, reporting one
outcome per requested identifier.

Example:
    $ qmctl vm list --node pve-1
    $ qmctl vm remove 100 101 --node pve-1
    $ qmctl vm clone 9000 --resize scsi0 20G --node pve-1
"""

__version__ = "0.1.0"

from qmctl.core.exceptions import (
    CollectionError,
    ConfigurationError,
    GatewayError,
    NodeNotFoundError,
    OperationError,
    QmctlError,
    SSHConnectionError,
    ValidationError,
)

__all__ = [
    "CollectionError",
    "ConfigurationError",
    "GatewayError",
    "NodeNotFoundError",
    "OperationError",
    "QmctlError",
    "SSHConnectionError",
    "ValidationError",
    "__version__",
]
