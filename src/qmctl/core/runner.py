"""Command runners that deliver control-plane commands to a node.

A runner executes one command line and returns a
:class:`~qmctl.core.ssh.CommandResult`. Remote nodes go through the
pooled :class:`~qmctl.core.ssh.SSHManager`; when qmctl runs on the node
itself, :class:`LocalRunner` executes the command directly.
"""

from __future__ import annotations

import shlex
import subprocess
from typing import Protocol

from qmctl.core.exceptions import TransportError
from qmctl.core.ssh import CommandResult, SSHManager
from qmctl.models.node import Node, Transport
from qmctl.utils.logging import get_logger

logger = get_logger("runner")


class CommandRunner(Protocol):
    """Anything that can run a command line on a node."""

    def run(self, node: Node, command: str, timeout: int | None = None) -> CommandResult: ...


class LocalRunner:
    """Runs commands on this machine with :mod:`subprocess`.

    Args:
        default_timeout: Timeout in seconds when the caller gives none.
    """

    def __init__(self, default_timeout: int = 30) -> None:
        self.default_timeout = default_timeout

    def run(self, node: Node, command: str, timeout: int | None = None) -> CommandResult:
        exec_timeout = timeout or self.default_timeout
        logger.debug(f"Executing locally: {command}")
        try:
            proc = subprocess.run(
                shlex.split(command),
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                # Own session: a terminal Ctrl-C must not reach an in-flight qm call.
                start_new_session=True,
                timeout=exec_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise TransportError("local", f"Command timed out after {exec_timeout}s") from e
        except OSError as e:
            raise TransportError("local", f"Cannot execute command: {e}") from e

        return CommandResult(
            stdout=proc.stdout.strip(),
            stderr=proc.stderr.strip(),
            exit_code=proc.returncode,
            node=node.name,
            command=command,
        )

    def close_all(self) -> None:
        """Nothing to release; present for symmetry with SSHManager."""


def create_runner(node: Node, timeout: int = 30) -> SSHManager | LocalRunner:
    """Build the runner matching a node's transport."""
    if node.transport == Transport.LOCAL:
        return LocalRunner(default_timeout=timeout)
    return SSHManager(default_timeout=timeout)
