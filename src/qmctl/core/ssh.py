"""SSH command execution with connection pooling.

This module provides a thread-safe SSH connection manager that handles:
- Connection pooling, one client per node
- Reconnection when a pooled connection has gone stale
- SSH key and agent authentication

Commands run through :meth:`SSHManager.run` are single attempts. Retry
policy lives with the callers that know whether a command is safe to
repeat.
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

import paramiko

from qmctl.core.exceptions import (
    SSHAuthenticationError,
    SSHConnectionError,
    SSHTimeoutError,
)
from qmctl.models.node import Node
from qmctl.utils.logging import get_logger

logger = get_logger("ssh")


@dataclass
class CommandResult:
    """Result of one command executed on a node.

    Args:
        stdout: Standard output from the command.
        stderr: Standard error from the command.
        exit_code: Exit code of the command.
        node: Name of the node where the command ran.
        command: The command that was executed.
    """

    stdout: str
    stderr: str
    exit_code: int
    node: str
    command: str

    @property
    def success(self) -> bool:
        """Check if command succeeded (exit code 0)."""
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr output."""
        parts = []
        if self.stdout:
            parts.append(self.stdout)
        if self.stderr:
            parts.append(self.stderr)
        return "\n".join(parts)

    @property
    def error_text(self) -> str:
        """Best available description of a failure."""
        return self.stderr or self.stdout or f"exit code {self.exit_code}"


@dataclass
class PooledConnection:
    """A pooled SSH connection with metadata."""

    client: paramiko.SSHClient
    node: Node
    created_at: float = field(default_factory=time.time)

    def is_active(self) -> bool:
        """Check if the connection is still active."""
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()


class SSHManager:
    """Runs commands on nodes over pooled SSH connections.

    Args:
        default_timeout: Default timeout for SSH operations in seconds.
        pool_max_age: Maximum age of pooled connections in seconds.

    Example:
        >>> manager = SSHManager()
        >>> node = Node(name="pve-1", hostname="192.168.1.10")
        >>> result = manager.run(node, "qm list")
        >>> manager.close_all()
    """

    def __init__(
        self,
        default_timeout: int = 30,
        pool_max_age: int = 300,
    ) -> None:
        self._lock = threading.RLock()
        self._pool: dict[str, PooledConnection] = {}
        self.default_timeout = default_timeout
        self.pool_max_age = pool_max_age

    def _create_client(
        self,
        node: Node,
        timeout: int | None = None,
    ) -> paramiko.SSHClient:
        """Create a new SSH client connection.

        Raises:
            SSHAuthenticationError: If authentication fails.
            SSHTimeoutError: If connection times out.
            SSHConnectionError: For other connection failures.
        """
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_timeout = timeout or self.default_timeout

        key_filename = None
        if node.ssh_key:
            key_path = Path(node.ssh_key).expanduser()
            if key_path.exists():
                key_filename = str(key_path)
            else:
                logger.warning(f"SSH key not found: {node.ssh_key}")

        try:
            logger.debug(f"Connecting to {node.hostname}:{node.port} as {node.username}")
            client.connect(
                hostname=node.hostname,
                port=node.port,
                username=node.username,
                key_filename=key_filename,
                look_for_keys=True,
                allow_agent=True,
                timeout=connect_timeout,
            )
            logger.debug(f"Connected to {node.name}")
            return client

        except paramiko.AuthenticationException as e:
            client.close()
            raise SSHAuthenticationError(node.hostname, node.username) from e

        except TimeoutError as e:
            client.close()
            raise SSHTimeoutError(node.hostname, connect_timeout) from e

        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise SSHConnectionError(node.hostname, str(e)) from e

    def get_client(self, node: Node, force_new: bool = False) -> paramiko.SSHClient:
        """Get a pooled or new SSH client for a node."""
        with self._lock:
            if not force_new and node.name in self._pool:
                pooled = self._pool[node.name]
                age = time.time() - pooled.created_at
                if pooled.is_active() and age < self.pool_max_age:
                    logger.debug(f"Reusing pooled connection for {node.name}")
                    return pooled.client

                logger.debug(f"Removing stale connection for {node.name}")
                with contextlib.suppress(Exception):
                    pooled.client.close()
                del self._pool[node.name]

            client = self._create_client(node)
            self._pool[node.name] = PooledConnection(client=client, node=node)
            return client

    def run(self, node: Node, command: str, timeout: int | None = None) -> CommandResult:
        """Execute a command on a node.

        Args:
            node: Node to run the command on.
            command: Shell command line.
            timeout: Command execution timeout in seconds.

        Returns:
            CommandResult with output and exit code.

        Raises:
            SSHConnectionError: If the connection fails or the command
                does not finish in time. The command may or may not have
                taken effect on the node.
        """
        logger.debug(f"Executing on {node.name}: {command}")
        exec_timeout = timeout or self.default_timeout

        try:
            client = self.get_client(node)
            _stdin, stdout, stderr = client.exec_command(command, timeout=exec_timeout)

            stdout_data = stdout.read().decode("utf-8", errors="replace")
            stderr_data = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()

        except TimeoutError as e:
            self.close(node.name)
            raise SSHConnectionError(
                node.hostname, f"Command timed out after {exec_timeout}s"
            ) from e

        except paramiko.SSHException as e:
            with self._lock:
                self._pool.pop(node.name, None)
            raise SSHConnectionError(node.hostname, str(e)) from e

        result = CommandResult(
            stdout=stdout_data.strip(),
            stderr=stderr_data.strip(),
            exit_code=exit_code,
            node=node.name,
            command=command,
        )
        if not result.success:
            logger.debug(f"Command failed on {node.name} with exit code {exit_code}")
        return result

    def test_connection(self, node: Node) -> tuple[bool, str]:
        """Check SSH connectivity and that ``qm`` is available on the node.

        Returns:
            Tuple of (success, message).
        """
        try:
            client = self._create_client(node, timeout=10)
            _stdin, stdout, _stderr = client.exec_command("command -v qm")
            found = stdout.read().decode().strip()
            client.close()
        except SSHAuthenticationError as e:
            return False, f"Authentication failed: {e.message}"
        except SSHTimeoutError as e:
            return False, f"Connection timed out: {e.message}"
        except SSHConnectionError as e:
            return False, f"Connection failed: {e.message}"

        if found:
            return True, f"Connected to {node.display_name}, qm at {found}"
        return False, f"Connected to {node.name} but 'qm' was not found"

    def close(self, node_name: str) -> None:
        """Close a specific pooled connection."""
        with self._lock:
            pooled = self._pool.pop(node_name, None)
            if pooled is not None:
                with contextlib.suppress(Exception):
                    pooled.client.close()
                logger.debug(f"Closed connection for {node_name}")

    def close_all(self) -> None:
        """Close all pooled connections."""
        with self._lock:
            for pooled in self._pool.values():
                with contextlib.suppress(Exception):
                    pooled.client.close()
            self._pool.clear()
            logger.debug("Closed all SSH connections")

    @property
    def active_connections(self) -> list[str]:
        """List of currently pooled node names."""
        with self._lock:
            return [name for name, pooled in self._pool.items() if pooled.is_active()]

    def __enter__(self) -> SSHManager:
        return self

    def __exit__(self, *args: object) -> None:
        self.close_all()
