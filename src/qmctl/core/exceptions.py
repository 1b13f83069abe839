"""Custom exceptions for qmctl.

This module defines a hierarchy of exceptions used throughout qmctl.
Fatal errors abort a whole request before any mutating call is made;
per-identifier errors are captured into that identifier's outcome and
the rest of the batch carries on.

Exception Hierarchy:
    QmctlError (base)
    ├── ConfigurationError
    │   └── ConfigNotFoundError
    ├── TransportError
    │   └── SSHConnectionError
    │       ├── SSHAuthenticationError
    │       └── SSHTimeoutError
    ├── NodeNotFoundError
    ├── GatewayError
    ├── CollectionError            (fatal)
    ├── ValidationError            (fatal)
    └── OperationError             (per identifier)
        ├── NotFoundError
        ├── AmbiguousKindError
        ├── InvalidSourceError
        ├── UnknownDiskLabelError
        ├── StopFailedError
        ├── DestroyFailedError
        ├── CloneFailedError
        └── ResizeFailedError
"""

from __future__ import annotations

from typing import Any


class QmctlError(Exception):
    """Base exception for all qmctl errors.

    Args:
        message: Human-readable error message.
        details: Optional dictionary with additional error context.

    Attributes:
        message: The error message.
        details: Additional context about the error.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(QmctlError):
    """Raised when there is a configuration-related error.

    Examples:
        - Invalid YAML syntax in config file
        - Missing required configuration fields
        - No node could be selected for a command
    """


class ConfigNotFoundError(ConfigurationError):
    """Raised when the configuration file cannot be found.

    Args:
        path: The path where the config was expected.
    """

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Configuration file not found: {path}",
            details={"path": path},
        )
        self.path = path


class TransportError(QmctlError):
    """Raised when a command cannot be delivered to the node or does not
    finish in time. The command may or may not have taken effect.

    Args:
        host: The hostname, or "local".
        message: Description of the failure.
    """

    def __init__(self, host: str, message: str) -> None:
        super().__init__(message, details={"host": host})
        self.host = host


class SSHConnectionError(TransportError):
    """Raised when an SSH connection fails.

    Args:
        host: The hostname or IP address.
        message: Description of the connection failure.
    """

    def __init__(self, host: str, message: str) -> None:
        super().__init__(host, f"SSH connection to '{host}' failed: {message}")


class SSHAuthenticationError(SSHConnectionError):
    """Raised when SSH authentication fails."""

    def __init__(self, host: str, username: str | None = None) -> None:
        msg = "authentication failed"
        if username:
            msg = f"authentication failed for user '{username}'"
        super().__init__(host, msg)
        self.username = username


class SSHTimeoutError(SSHConnectionError):
    """Raised when an SSH connection times out."""

    def __init__(self, host: str, timeout: int) -> None:
        super().__init__(host, f"connection timed out after {timeout}s")
        self.timeout = timeout
        self.details["timeout"] = timeout


class NodeNotFoundError(QmctlError):
    """Raised when a node name is not present in the configuration.

    Args:
        name: The name of the node that was not found.
    """

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Node '{name}' not found in configuration",
            details={"node_name": name},
        )
        self.name = name


class GatewayError(QmctlError):
    """Raised when a control-plane command on the node fails.

    Args:
        operation: Gateway operation name (e.g. 'stop', 'clone').
        reason: Error text reported by the node or the transport.
        vmid: Identifier the operation targeted, if any.
    """

    def __init__(self, operation: str, reason: str, vmid: int | None = None) -> None:
        target = f" {vmid}" if vmid is not None else ""
        super().__init__(f"{operation}{target} failed: {reason}")
        self.operation = operation
        self.reason = reason
        self.vmid = vmid


class CollectionError(QmctlError):
    """Raised when a complete inventory snapshot cannot be obtained.

    Fatal for the whole request: no mutating call is made afterwards.
    """


class ValidationError(QmctlError):
    """Raised when an operation request is malformed.

    Fatal for the whole request and raised before any gateway call.
    """


class OperationError(QmctlError):
    """Per-identifier failure captured into an operation outcome.

    Args:
        vmid: The identifier the failure belongs to.
        reason: Outcome reason text, e.g. ``"stop failed: timeout"``.

    Attributes:
        reason: Exact text recorded on the failed outcome.
    """

    def __init__(self, vmid: int, reason: str) -> None:
        super().__init__(f"{vmid}: {reason}", details={"vmid": vmid})
        self.vmid = vmid
        self.reason = reason


class NotFoundError(OperationError):
    """The identifier is not present in the inventory snapshot."""

    def __init__(self, vmid: int) -> None:
        super().__init__(vmid, "not found")


class AmbiguousKindError(OperationError):
    """The object could not be classified as a VM or a template."""

    def __init__(self, vmid: int) -> None:
        super().__init__(vmid, "ambiguous object kind")


class InvalidSourceError(OperationError):
    """The clone source is neither a template nor a stopped VM."""

    def __init__(self, vmid: int, reason: str = "source is running") -> None:
        super().__init__(vmid, reason)


class UnknownDiskLabelError(OperationError):
    """The requested resize disk label does not exist on the source."""

    def __init__(self, vmid: int, label: str) -> None:
        super().__init__(vmid, "unknown disk label")
        self.label = label
        self.details["disk"] = label


class StopFailedError(OperationError):
    """Stopping a running VM failed; destroy is never attempted."""

    def __init__(self, vmid: int, cause: str) -> None:
        super().__init__(vmid, f"stop failed: {cause}")


class DestroyFailedError(OperationError):
    """Destroying a VM or template failed."""

    def __init__(self, vmid: int, cause: str) -> None:
        super().__init__(vmid, f"destroy failed: {cause}")


class CloneFailedError(OperationError):
    """Cloning failed; no resize is attempted."""

    def __init__(self, vmid: int, cause: str) -> None:
        super().__init__(vmid, f"clone failed: {cause}")


class ResizeFailedError(OperationError):
    """Resizing the cloned disk failed. The clone itself is kept.

    Args:
        vmid: The clone source identifier.
        cause: Error text from the node.
        new_id: Identifier of the clone that was created.
    """

    def __init__(self, vmid: int, cause: str, new_id: int | None = None) -> None:
        super().__init__(vmid, f"resize failed: {cause}")
        self.new_id = new_id
        if new_id is not None:
            self.details["new_id"] = new_id
