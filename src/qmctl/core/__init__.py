"""Core functionality for qmctl.

This package contains the configuration layer, command transports, the
control-plane gateway, inventory collection and the lifecycle
controller. Import those from their modules; only the exceptions and
configuration are re-exported here.
"""

from qmctl.core.exceptions import (
    AmbiguousKindError,
    CloneFailedError,
    CollectionError,
    ConfigNotFoundError,
    ConfigurationError,
    DestroyFailedError,
    GatewayError,
    NodeNotFoundError,
    NotFoundError,
    OperationError,
    QmctlError,
    ResizeFailedError,
    StopFailedError,
    TransportError,
    ValidationError,
)
from qmctl.core.config import Config, ConfigManager

__all__ = [
    "AmbiguousKindError",
    "CloneFailedError",
    "CollectionError",
    "Config",
    "ConfigManager",
    "ConfigNotFoundError",
    "ConfigurationError",
    "DestroyFailedError",
    "GatewayError",
    "NodeNotFoundError",
    "NotFoundError",
    "OperationError",
    "QmctlError",
    "ResizeFailedError",
    "StopFailedError",
    "TransportError",
    "ValidationError",
]
