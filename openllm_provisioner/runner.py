"""Subprocess execution, including commands run as the service account."""

import logging
import shutil
import subprocess
from typing import Dict, List, Optional, Sequence, Self

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs external commands on the host."""

    def run(
        self: Self,
        command: Sequence[str],
        check: bool = False,
        capture: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run a command and return the completed process.

        Args:
            command: Argument vector to execute.
            check: Raise CalledProcessError on a non-zero exit status.
            capture: Capture stdout/stderr instead of streaming them to the
                terminal.
        """
        logger.debug("Running: %s", " ".join(command))
        return subprocess.run(
            list(command),
            capture_output=capture,
            text=True,
            check=check,
        )

    def succeeds(self: Self, command: Sequence[str]) -> bool:
        """Return True when the command exits with status 0."""
        return self.run(command).returncode == 0

    def which(self: Self, name: str) -> Optional[str]:
        """Locate an executable on PATH."""
        return shutil.which(name)


class ServiceAccount:
    """Runs commands as the unprivileged service account via sudo."""

    def __init__(
        self: Self,
        runner: CommandRunner,
        user: str,
        environment: Optional[Dict[str, str]] = None,
    ) -> None:
        self.runner = runner
        self.user = user
        self.environment = environment or {}

    def command(self: Self, command: Sequence[str]) -> List[str]:
        """Wrap a command so it runs as the service account with its environment."""
        wrapped = ["sudo", "-u", self.user, "-H"]
        if self.environment:
            wrapped.append("env")
            wrapped.extend(f"{key}={value}" for key, value in self.environment.items())
        wrapped.extend(command)
        return wrapped

    def run(
        self: Self,
        command: Sequence[str],
        check: bool = False,
        capture: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        return self.runner.run(self.command(command), check=check, capture=capture)

    def can_read(self: Self, path: str) -> bool:
        """Check whether the service account can read a path."""
        return self.runner.succeeds(["sudo", "-u", self.user, "test", "-r", path])
