"""Service account, group and storage directory setup."""

import getpass
import logging
import os
from pathlib import Path
from typing import Optional, Sequence, Self

from .audit import AuditEventType, AuditLogger
from .errors import AccountError
from .output import info
from .runner import CommandRunner

logger = logging.getLogger(__name__)

STORAGE_MODE = "770"


def invoking_operator() -> str:
    """Name of the human who ran the provisioner, looking through sudo."""
    return os.environ.get("SUDO_USER") or getpass.getuser()


class AccountManager:
    """Creates and reconciles system accounts and groups."""

    def __init__(self: Self, runner: CommandRunner) -> None:
        self.runner = runner

    def _checked(self: Self, command: Sequence[str], description: str) -> None:
        result = self.runner.run(command)
        if result.returncode != 0:
            raise AccountError(
                f"{description} failed: {(result.stderr or '').strip() or 'exit status ' + str(result.returncode)}",
                [f"Run '{' '.join(command)}' manually to see the full error"]
            )

    def group_exists(self: Self, group: str) -> bool:
        return self.runner.succeeds(["getent", "group", group])

    def user_exists(self: Self, user: str) -> bool:
        return self.runner.succeeds(["id", "-u", user])

    def create_group(self: Self, group: str) -> None:
        self._checked(["groupadd", "--system", group], f"Creating group '{group}'")

    def create_user(self: Self, user: str, group: str, home: Path) -> None:
        self._checked(
            ["useradd", "--system", "--gid", group, "--home-dir", str(home),
             "--create-home", "--shell", "/bin/bash", user],
            f"Creating user '{user}'"
        )

    def set_home(self: Self, user: str, home: Path) -> None:
        self._checked(["usermod", "-d", str(home), user], f"Setting home of '{user}'")

    def add_to_group(self: Self, user: str, group: str) -> None:
        self._checked(["usermod", "-a", "-G", group, user], f"Adding '{user}' to '{group}'")

    def chown(self: Self, path: Path, user: str, group: str, recursive: bool = False) -> None:
        command = ["chown"] + (["-R"] if recursive else []) + [f"{user}:{group}", str(path)]
        self._checked(command, f"Changing ownership of {path}")

    def chmod(self: Self, path: Path, mode: str) -> None:
        self._checked(["chmod", mode, str(path)], f"Changing permissions of {path}")


def setup_identity_and_storage(
    accounts: AccountManager,
    user: str,
    group: str,
    storage: Path,
    operator: Optional[str] = None,
    audit: Optional[AuditLogger] = None,
) -> None:
    """Guarantee the service identity and its storage directory exist.

    Safe to repeat: existing accounts are reconciled rather than recreated,
    and ownership and permissions are reasserted on every run.

    Args:
        accounts: Account management capability.
        user: Service account name.
        group: Service group name.
        storage: Model storage directory, also the account's home.
        operator: Human operator to add to the group.
        audit: Optional audit logger.
    """
    storage = Path(storage)
    operator = operator or invoking_operator()

    info(f"Setting up user '{user}' and group '{group}'...")
    if not accounts.group_exists(group):
        accounts.create_group(group)
        info(f"Group '{group}' created.")
        if audit:
            audit.log_event(AuditEventType.IDENTITY, "Group created", resource=group)
    else:
        info(f"Group '{group}' already exists.")

    if not accounts.user_exists(user):
        accounts.create_user(user, group, storage)
        info(f"User '{user}' created with home directory {storage}.")
        if audit:
            audit.log_event(AuditEventType.IDENTITY, "User created", resource=user,
                            details={"home": str(storage), "group": group})
    else:
        info(f"User '{user}' already exists.")
        accounts.set_home(user, storage)
        accounts.add_to_group(user, group)
        info(f"Ensured '{user}' home is {storage} and is in group '{group}'.")
        if audit:
            audit.log_event(AuditEventType.IDENTITY, "User reconciled", resource=user,
                            details={"home": str(storage), "group": group})

    info(f"Setting up model directory: {storage}")
    try:
        storage.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise AccountError(
            f"Cannot create model directory {storage}: {e.strerror or e}",
            ["Choose a directory path that is not an existing file"]
        ) from e
    accounts.chown(storage, user, group)
    accounts.chmod(storage, STORAGE_MODE)
    if audit:
        audit.log_event(AuditEventType.STORAGE, "Storage directory prepared", resource=str(storage),
                        details={"owner": f"{user}:{group}", "mode": STORAGE_MODE})

    info(f"Adding user '{operator}' to group '{group}' for access to {storage}.")
    accounts.add_to_group(operator, group)
    info(f"You may need to log out and log back in for group changes for '{operator}' to take effect.")
    logger.debug("Identity setup complete for %s:%s at %s", user, group, storage)
