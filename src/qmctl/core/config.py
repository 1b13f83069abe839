"""Configuration management for qmctl.

This module provides a Pydantic-based configuration system that supports:
- YAML configuration files
- Environment variable overrides
- Default values with validation
- Automatic directory creation

The default config location is ~/.qmctl/config.yaml, which can be
overridden with the QMCTL_CONFIG environment variable. The file is read
once per process; commands work from that loaded copy.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from qmctl.core.exceptions import (
    ConfigNotFoundError,
    ConfigurationError,
    NodeNotFoundError,
)
from qmctl.models.node import Node


def get_default_config_path() -> Path:
    """Get the default configuration file path.

    The path can be overridden by setting the QMCTL_CONFIG
    environment variable.
    """
    env_path = os.environ.get("QMCTL_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".qmctl" / "config.yaml"


def get_default_log_path() -> Path:
    return Path.home() / ".qmctl" / "logs" / "qmctl.log"


class LoggingConfig(BaseModel):
    """Logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        file: Path to log file (optional).
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class DefaultsConfig(BaseModel):
    """Default values for lifecycle operations.

    Args:
        timeout: Timeout in seconds for a single control-plane command.
        max_workers: Identifiers processed in parallel (1 = sequential).
        full_clone: Make full clones of templates instead of linked ones.
        purge: Remove a destroyed VM from backup jobs and replication and
            destroy its unreferenced disks.
        resize_disk: Disk label resized after every clone, if set.
        resize_size: Size applied to ``resize_disk``.
    """

    timeout: Annotated[int, Field(ge=10, le=3600)] = Field(
        default=300, description="Command timeout in seconds"
    )
    max_workers: Annotated[int, Field(ge=1, le=16)] = Field(
        default=1, description="Parallel identifiers"
    )
    full_clone: bool = Field(default=True, description="Full clones by default")
    purge: bool = Field(default=True, description="Purge VM references on destroy")
    resize_disk: str | None = Field(default=None, description="Default resize disk label")
    resize_size: str | None = Field(default=None, description="Default resize size")

    @model_validator(mode="after")
    def _resize_pair(self) -> DefaultsConfig:
        if (self.resize_disk is None) != (self.resize_size is None):
            raise ValueError("resize_disk and resize_size must be set together")
        return self


class Config(BaseModel):
    """Main configuration model for qmctl.

    Args:
        nodes: Configured Proxmox nodes.
        default_node: Node used when a command names none.
        defaults: Default values for lifecycle operations.
        logging: Logging configuration.

    Example config.yaml:
        ```yaml
        nodes:
          - name: pve-1
            hostname: 192.168.1.10
            username: root
            ssh_key: ~/.ssh/id_ed25519
            pve_node: pve1

        default_node: pve-1

        defaults:
          timeout: 300
          max_workers: 1
          full_clone: true
          purge: true

        logging:
          level: INFO
          file: ~/.qmctl/logs/qmctl.log
        ```
    """

    nodes: list[Node] = Field(default_factory=list, description="Configured nodes")
    default_node: str | None = Field(default=None, description="Default node name")
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig, description="Default values")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging config")

    def get_node(self, name: str) -> Node | None:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    @property
    def node_names(self) -> list[str]:
        """List of all configured node names."""
        return [n.name for n in self.nodes]


class ConfigManager:
    """Manages reading and writing qmctl configuration.

    This class handles:
    - Loading configuration from YAML files
    - Saving configuration changes
    - Validating configuration with Pydantic
    - Resolving which node a command acts on

    Args:
        path: Optional path to config file. Uses default if not specified.

    Attributes:
        path: Path to the configuration file.
        config: The loaded and validated Config object.

    Example:
        >>> cm = ConfigManager()
        >>> node = cm.resolve_node("pve-1")
    """

    def __init__(self, path: Path | str | None = None) -> None:
        if path is None:
            self.path = get_default_config_path()
        else:
            self.path = Path(path).expanduser()

        self.config = self._load_or_create()

    def _load_or_create(self) -> Config:
        if self.path.exists():
            return self._load()
        return Config()

    def _load(self) -> Config:
        """Load and validate configuration from file.

        Raises:
            ConfigurationError: If the config file is invalid.
            ConfigNotFoundError: If the config file doesn't exist.
        """
        if not self.path.exists():
            raise ConfigNotFoundError(str(self.path))

        try:
            with self.path.open("r") as f:
                data = yaml.safe_load(f) or {}
            return Config.model_validate(data)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in config file: {e}",
                details={"path": str(self.path)},
            ) from e
        except Exception as e:
            raise ConfigurationError(
                f"Failed to load config: {e}",
                details={"path": str(self.path)},
            ) from e

    def save(self) -> None:
        """Save current configuration to file.

        Raises:
            ConfigurationError: If saving fails.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            data = self.config.model_dump(mode="json", exclude_none=True)
            with self.path.open("w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save config: {e}",
                details={"path": str(self.path)},
            ) from e

    def reload(self) -> None:
        """Reload configuration from disk."""
        self.config = self._load_or_create()

    def add_node(self, node: Node) -> None:
        """Add a new node to the configuration.

        Raises:
            ConfigurationError: If a node with the same name exists.
        """
        if self.config.get_node(node.name) is not None:
            raise ConfigurationError(
                f"Node '{node.name}' already exists",
                details={"node_name": node.name},
            )
        self.config.nodes.append(node)
        self.save()

    def remove_node(self, name: str) -> bool:
        """Remove a node by name.

        Returns:
            True if removed, False if not found.
        """
        for i, node in enumerate(self.config.nodes):
            if node.name == name:
                del self.config.nodes[i]
                if self.config.default_node == name:
                    self.config.default_node = None
                self.save()
                return True
        return False

    def get_node(self, name: str) -> Node | None:
        return self.config.get_node(name)

    def resolve_node(self, name: str | None = None) -> Node:
        """Pick the node a command acts on.

        Order: the explicit name, then ``default_node``, then the only
        configured node.

        Raises:
            NodeNotFoundError: If the named node is not configured.
            ConfigurationError: If no node can be chosen.
        """
        name = name or self.config.default_node
        if name:
            node = self.config.get_node(name)
            if node is None:
                raise NodeNotFoundError(name)
            return node
        if len(self.config.nodes) == 1:
            return self.config.nodes[0]
        if not self.config.nodes:
            raise ConfigurationError(
                "No nodes configured. Use 'qmctl nodes add' to add one."
            )
        raise ConfigurationError(
            "Several nodes configured; pass --node or set default_node",
            details={"nodes": ", ".join(self.config.node_names)},
        )

    @property
    def nodes(self) -> list[Node]:
        return self.config.nodes

    @property
    def defaults(self) -> DefaultsConfig:
        return self.config.defaults

    def to_dict(self) -> dict[str, Any]:
        return self.config.model_dump(mode="json", exclude_none=True)

    @classmethod
    def create_example_config(cls, path: Path | None = None) -> Path:
        """Create an example configuration file.

        Args:
            path: Optional path for the config. Uses default if not specified.

        Returns:
            Path to the created config file.
        """
        path = get_default_config_path() if path is None else Path(path).expanduser()

        path.parent.mkdir(parents=True, exist_ok=True)

        example_config = {
            "nodes": [
                {
                    "name": "pve-1",
                    "hostname": "192.168.1.10",
                    "username": "root",
                    "ssh_key": "~/.ssh/id_ed25519",
                    "port": 22,
                    "pve_node": "pve1",
                    "transport": "ssh",
                },
                {
                    "name": "here",
                    "pve_node": "localhost",
                    "transport": "local",
                },
            ],
            "default_node": "pve-1",
            "defaults": {
                "timeout": 300,
                "max_workers": 1,
                "full_clone": True,
                "purge": True,
            },
            "logging": {
                "level": "INFO",
                "file": str(get_default_log_path()),
            },
        }

        with path.open("w") as f:
            yaml.safe_dump(example_config, f, default_flow_style=False, sort_keys=False)

        return path
