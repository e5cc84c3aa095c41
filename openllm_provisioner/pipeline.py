"""End-to-end provisioning run."""

import logging
from pathlib import Path
from typing import List, Optional, Self

from .accounts import AccountManager, invoking_operator, setup_identity_and_storage
from .audit import AuditEventType, AuditLogger
from .collection import collect_targets
from .config import Settings
from .environment import PackageManager, RuntimeEnvironment, require_commands, setup_runtime
from .errors import require_root_privileges
from .materialize import ServiceMaterializer, ServiceResult
from .output import info
from .prompts import Prompter
from .runner import CommandRunner
from .targets import TargetCollection
from .tool import OpenLLMTool
from .ui.display import display_service_table, display_targets_table
from .units import UnitManager, UnitRenderer

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = (
    "getent", "groupadd", "useradd", "usermod", "id",
    "chown", "chmod", "sudo", "systemctl", "dpkg", "apt-get",
)


class Provisioner:
    """Runs the provisioning stages in order."""

    def __init__(
        self: Self,
        settings: Settings,
        runner: Optional[CommandRunner] = None,
        prompter: Optional[Prompter] = None,
        audit: Optional[AuditLogger] = None,
        operator: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.runner = runner or CommandRunner()
        self.prompter = prompter or Prompter()
        self.audit = audit or AuditLogger(None)
        self.operator = operator or invoking_operator()

    def preflight(self: Self) -> None:
        """Require root and the host commands every stage relies on."""
        require_root_privileges()
        require_commands(self.runner, REQUIRED_COMMANDS)
        self.audit.log_event(AuditEventType.PREFLIGHT, "Preflight checks passed")

    def ask_storage(self: Self) -> Path:
        default = self.settings.default_model_dir
        answer = self.prompter.ask(
            f"Enter the directory for OpenLLM models (default: {default})",
            default=default,
        )
        storage = Path(answer).expanduser().absolute()
        info(f"Using model directory: {storage}")
        return storage

    def run(self: Self) -> List[ServiceResult]:
        """Provision the host.

        Returns:
            One result per materialized service; empty when nothing was
            selected.
        """
        settings = self.settings
        self.preflight()
        storage = self.ask_storage()

        accounts = AccountManager(self.runner)
        setup_identity_and_storage(
            accounts, settings.service_user, settings.data_group, storage,
            operator=self.operator, audit=self.audit,
        )

        environment = RuntimeEnvironment(
            self.runner, accounts, storage,
            settings.service_user, settings.data_group, settings.python_cmd,
        )
        setup_runtime(
            PackageManager(self.runner), environment,
            settings.system_packages, settings.tool_package,
            (settings.python_cmd, settings.pip_cmd), audit=self.audit,
        )

        account = environment.service_account()
        tool = OpenLLMTool(account, environment.path)
        targets = collect_targets(
            self.prompter, TargetCollection(settings.start_port), account, tool, self.audit
        )

        if not targets:
            info("No models (neither local nor Hub) selected to run as services. Script will exit.")
            return []

        display_targets_table(targets)

        renderer = UnitRenderer(
            tool, settings.service_user, settings.data_group, storage,
            restart_sec=settings.restart_sec, offline_mode=settings.offline_mode,
        )
        materializer = ServiceMaterializer(
            renderer, UnitManager(self.runner, Path(settings.systemd_dir)),
            unit_prefix=settings.unit_prefix, audit=self.audit,
        )
        results = materializer.materialize_all(targets)

        self.report(storage, environment.path, results)
        return results

    def report(self: Self, storage: Path, venv_path: Path, results: List[ServiceResult]) -> None:
        """Print the summary and follow-up guidance."""
        display_service_table(results)
        prefix = self.settings.unit_prefix
        user = self.settings.service_user
        info("--- OpenLLM Server Setup Complete ---")
        info(f"Model directory: {storage}")
        info(f"Virtual environment: {venv_path}")
        info(f"Make sure user '{self.operator}' logs out and back in if they need to manage files in {storage} directly.")
        info("Installed services can be managed with systemctl (status, stop, start, restart).")
        info(f"For example, to check all {prefix} services: systemctl list-units '{prefix}-*.service'")
        info(f"If you used local models, ensure the '{user}' user has persistent read access to their original paths.")
