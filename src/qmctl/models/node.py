"""Node models for qmctl.

A node is one Proxmox VE host whose VMs and templates qmctl manages.
It is reached over SSH, or directly when qmctl runs on the node itself.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field, field_validator


class Transport(str, Enum):
    """How control-plane commands reach the node."""

    SSH = "ssh"
    LOCAL = "local"


class Node(BaseModel):
    """Represents a Proxmox VE node.

    Args:
        name: Unique identifier for this node in the configuration.
        hostname: IP address or hostname for SSH connection.
        username: SSH username (defaults to current user if not specified).
        port: SSH port number.
        ssh_key: Path to SSH private key file.
        pve_node: Node name as known to Proxmox (``/nodes/<pve_node>``).
        transport: ``ssh`` to run commands remotely, ``local`` to run them
            on this machine.

    Example:
        >>> node = Node(
        ...     name="pve-1",
        ...     hostname="192.168.1.10",
        ...     username="root",
        ...     ssh_key="~/.ssh/id_ed25519"
        ... )
    """

    name: Annotated[str, Field(min_length=1, description="Unique node identifier")]
    hostname: Annotated[str, Field(min_length=1, description="IP address or hostname")] = (
        "localhost"
    )
    username: str | None = Field(default="root", description="SSH username")
    port: Annotated[int, Field(ge=1, le=65535)] = Field(default=22, description="SSH port")
    ssh_key: str | None = Field(default=None, description="Path to SSH private key")
    pve_node: Annotated[str, Field(min_length=1)] = Field(
        default="localhost", description="Proxmox node name"
    )
    transport: Transport = Field(default=Transport.SSH, description="Command transport")

    @field_validator("ssh_key")
    @classmethod
    def expand_ssh_key_path(cls, v: str | None) -> str | None:
        """Expand ~ in SSH key path."""
        if v is not None:
            return str(Path(v).expanduser())
        return v

    @property
    def display_name(self) -> str:
        """Human-readable display name for this node."""
        if self.transport == Transport.LOCAL:
            return f"{self.name} (local)"
        return f"{self.name} ({self.hostname})"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = self.model_dump(exclude_none=True)
        data["transport"] = self.transport.value
        return data
