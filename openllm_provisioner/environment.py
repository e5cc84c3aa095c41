"""System packages and the isolated Python environment hosting OpenLLM."""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Self

from .accounts import AccountManager
from .audit import AuditEventType, AuditLogger
from .errors import InstallationError, PreflightError
from .output import info
from .runner import CommandRunner, ServiceAccount

logger = logging.getLogger(__name__)

VENV_DIR_NAME = ".venv"


class PackageManager:
    """Queries and installs Debian packages."""

    def __init__(self: Self, runner: CommandRunner) -> None:
        self.runner = runner

    def is_installed(self: Self, package: str) -> bool:
        return self.runner.succeeds(["dpkg", "-s", package])

    def missing(self: Self, packages: Sequence[str]) -> List[str]:
        return [package for package in packages if not self.is_installed(package)]

    def install(self: Self, packages: Sequence[str]) -> None:
        """Refresh the package index and install packages.

        Raises:
            InstallationError: If apt-get fails.
        """
        for command in (["apt-get", "update"], ["apt-get", "install", "-y", *packages]):
            result = self.runner.run(command, capture=False)
            if result.returncode != 0:
                raise InstallationError(
                    f"'{' '.join(command)}' failed with exit status {result.returncode}.",
                    ["Run 'apt-get update' manually and check the sources list"]
                )

    def ensure(self: Self, packages: Sequence[str]) -> None:
        """Install any of the packages that are missing."""
        info(f"Checking and installing dependencies ({', '.join(packages)})...")
        if self.missing(packages):
            self.install(packages)
        else:
            info("Python venv and pip seem to be installed.")


def require_commands(runner: CommandRunner, commands: Sequence[str]) -> None:
    """Fail when any command is missing from PATH.

    Raises:
        PreflightError: Naming the first missing command.
    """
    for command in commands:
        if runner.which(command) is None:
            raise PreflightError(
                f"{command} could not be found. Please install it.",
                [f"Install the package that provides '{command}' and run the provisioner again"]
            )


class RuntimeEnvironment:
    """Virtual environment under the storage directory, owned by the service account."""

    def __init__(
        self: Self,
        runner: CommandRunner,
        accounts: AccountManager,
        storage: Path,
        user: str,
        group: str,
        python_cmd: str = "python3",
    ) -> None:
        self.runner = runner
        self.accounts = accounts
        self.storage = Path(storage)
        self.user = user
        self.group = group
        self.python_cmd = python_cmd

    @property
    def path(self: Self) -> Path:
        return self.storage / VENV_DIR_NAME

    @property
    def bin_dir(self: Self) -> Path:
        return self.path / "bin"

    def service_account(self: Self) -> ServiceAccount:
        """Service account runner with the environment's bin dir on PATH."""
        return ServiceAccount(self.runner, self.user, {
            "PATH": f"{self.bin_dir}:/usr/local/bin:/usr/bin:/bin",
            "OPENLLM_HOME": str(self.storage),
        })

    def ensure(self: Self) -> bool:
        """Create the environment if absent and reassert its ownership.

        Returns:
            True when the environment was created by this call.
        """
        info(f"Creating Python virtual environment at {self.path}...")
        created = False
        if not self.path.is_dir():
            result = self.runner.run([self.python_cmd, "-m", "venv", str(self.path)])
            if result.returncode != 0:
                raise InstallationError(
                    f"Failed to create virtual environment at {self.path}: {(result.stderr or '').strip()}",
                    ["Make sure the python3-venv package is installed"]
                )
            created = True
            info("Virtual environment created.")
        else:
            info(f"Virtual environment already exists at {self.path}.")
        self.accounts.chown(self.path, self.user, self.group, recursive=True)
        return created

    def install(self: Self, package: str) -> None:
        """Install a package into the environment as the service account.

        Raises:
            InstallationError: If pip fails.
        """
        info(f"Installing {package} into the virtual environment as user '{self.user}'...")
        account = self.service_account()
        pip = str(self.bin_dir / "pip")
        for command in ([pip, "install", "--upgrade", "pip"], [pip, "install", package]):
            result = account.run(command, capture=False)
            if result.returncode != 0:
                raise InstallationError(
                    f"Failed to install {package} as user '{self.user}'.",
                    [
                        "Inspect the pip output above for the failing requirement",
                        f"Remove {self.path} and run the provisioner again",
                    ]
                )
        info(f"{package} installed successfully in {self.path}.")


def setup_runtime(
    packages: PackageManager,
    environment: RuntimeEnvironment,
    system_packages: Sequence[str],
    tool_package: str,
    required_commands: Sequence[str],
    audit: Optional[AuditLogger] = None,
) -> None:
    """Prepare system packages, the virtual environment and the wrapped tool."""
    packages.ensure(system_packages)
    require_commands(packages.runner, required_commands)

    created = environment.ensure()
    if audit:
        audit.log_event(AuditEventType.RUNTIME, "Virtual environment ready", resource=str(environment.path),
                        details={"created": created})

    environment.install(tool_package)
    if audit:
        audit.log_event(AuditEventType.RUNTIME, "Tool installed", resource=tool_package)
