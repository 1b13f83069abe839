"""CLI context for qmctl.

This module defines the shared context object passed to all CLI commands.
It owns the configuration, loaded once, and builds the gateway and the
lifecycle controller for the node a command targets.
"""

from __future__ import annotations

from pathlib import Path

import click

from qmctl.core.config import ConfigManager
from qmctl.core.gateway import QmGateway
from qmctl.core.inventory import InventoryCollector
from qmctl.core.lifecycle import LifecycleController
from qmctl.core.runner import LocalRunner, create_runner
from qmctl.core.ssh import SSHManager
from qmctl.models.node import Node
from qmctl.utils.logging import configure_logging


class Context:
    """CLI context object passed to all commands.

    Attributes:
        config: ConfigManager instance, loaded on first use.
        config_path: Explicit config file path from ``--config``.
        runner: Command runner for the selected node.
        verbose: Verbosity level (0-3).
        dry_run: Plan only, never execute mutating calls.
        debug: Whether to show debug tracebacks.
    """

    def __init__(self) -> None:
        self.config: ConfigManager | None = None
        self.config_path: Path | None = None
        self.runner: SSHManager | LocalRunner | None = None
        self.verbose: int = 0
        self.dry_run: bool = False
        self.debug: bool = False

    def init_config(self) -> ConfigManager:
        """Load the configuration once and apply its logging settings."""
        if self.config is None:
            self.config = ConfigManager(self.config_path)
            log_file = self.config.config.logging.file
            if log_file:
                configure_logging(verbosity=self.verbose, log_file=log_file)
        return self.config

    def init_node(self, node_name: str | None = None) -> Node:
        return self.init_config().resolve_node(node_name)

    def init_gateway(self, node_name: str | None = None) -> QmGateway:
        """Build the gateway for the selected node."""
        config = self.init_config()
        node = config.resolve_node(node_name)
        defaults = config.defaults
        if self.runner is None:
            self.runner = create_runner(node, timeout=defaults.timeout)
        return QmGateway(node, self.runner, timeout=defaults.timeout, purge=defaults.purge)

    def init_controller(
        self,
        node_name: str | None = None,
        max_workers: int | None = None,
    ) -> LifecycleController:
        """Build the lifecycle controller for the selected node."""
        gateway = self.init_gateway(node_name)
        workers = max_workers or self.init_config().defaults.max_workers
        collector = InventoryCollector(gateway, gateway.node.name)
        return LifecycleController(gateway, collector, max_workers=workers)

    def cleanup(self) -> None:
        if self.runner is not None:
            self.runner.close_all()


pass_context = click.make_pass_decorator(Context, ensure=True)
