"""Interactive collection of the models to serve."""

import logging
import os
from typing import List, Optional, Self

from .audit import AuditEventType, AuditLogger
from .output import blank, console, info, warn
from .prompts import Prompter
from .runner import ServiceAccount
from .targets import (
    GGUF_BACKEND,
    Target,
    TargetCollection,
    TargetKind,
    hub_service_id,
    sanitize_service_name,
)
from .tool import OpenLLMTool

logger = logging.getLogger(__name__)


class LocalModelFlow:
    """Collects models already present on the host's filesystem."""

    def __init__(
        self: Self,
        prompter: Prompter,
        targets: TargetCollection,
        account: ServiceAccount,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self.prompter = prompter
        self.targets = targets
        self.account = account
        self.audit = audit

    def _validate_service_id(self: Self, service_id: str) -> Optional[str]:
        if not service_id:
            return "Service ID cannot be empty."
        if not sanitize_service_name(service_id):
            return f"Service ID '{service_id}' must contain letters, digits, '.', '_' or '-'."
        if self.targets.has_service_id(service_id):
            return f"Service ID '{service_id}' is already in use. Please choose a different one."
        return None

    @staticmethod
    def _validate_path(path: str) -> Optional[str]:
        if not path or not os.path.exists(path):
            return f"Path '{path}' does not exist."
        return None

    def _prompt_entry(self: Self) -> Optional[Target]:
        """Ask for one local model; None means the entry must start over."""
        service_id = self.prompter.ask(
            "Enter a unique Service ID for this local model (e.g., my-local-llama-7b)",
            validate=self._validate_service_id,
        )
        path = self.prompter.ask(
            "Enter the full path to your local model file (e.g., /path/to/model.gguf) or directory",
            validate=self._validate_path,
        )

        if not self.account.can_read(path):
            warn(f"User '{self.account.user}' may not have read access to '{path}'.")
            warn(f"Please ensure permissions are set correctly for '{path}' before the service starts.")

        if self.prompter.confirm("Is this a single GGUF model file?"):
            if not os.path.isfile(path):
                warn(f"'{path}' is not a file. Expected a GGUF file.")
                return None
            target = self.targets.add(TargetKind.LOCAL_GGUF, service_id, path, backend=GGUF_BACKEND)
            info(f"GGUF model selected. Will use '{GGUF_BACKEND}' runner with the specified model path.")
        else:
            if not os.path.isdir(path):
                warn(f"'{path}' is not a directory. Expected a HuggingFace model directory.")
                return None
            target = self.targets.add(TargetKind.LOCAL_HF_DIR, service_id, path)
            info("HuggingFace model directory selected. OpenLLM will attempt auto-detection using the model path.")

        return target

    def run(self: Self) -> List[Target]:
        """Loop over local model entries until the operator is done."""
        added: List[Target] = []
        while True:
            blank()
            info("Setting up a local model...")
            target = self._prompt_entry()
            if target is None:
                continue

            added.append(target)
            info(f"Local model '{target.service_id}' from path '{target.model_ref}' added for service creation.")
            if self.audit:
                self.audit.log_event(AuditEventType.TARGET, "Local model selected", resource=target.service_id,
                                     details={"kind": target.kind.value, "path": target.model_ref,
                                              "port": target.port})

            if not self.prompter.confirm("Add another local model?"):
                return added


class HubSelectionFlow:
    """Lets the operator pick models OpenLLM can fetch from the hub."""

    def __init__(
        self: Self,
        prompter: Prompter,
        targets: TargetCollection,
        tool: OpenLLMTool,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self.prompter = prompter
        self.targets = targets
        self.tool = tool
        self.audit = audit

    def add_selection(self: Self, model_ids: List[str]) -> List[Target]:
        """Append one hub target per identifier, suffixing ids that collide."""
        added = []
        for model_id in model_ids:
            if not sanitize_service_name(model_id):
                warn(f"Skipping '{model_id}': it cannot be used as a service name.")
                continue
            service_id = self.targets.unique_service_id(hub_service_id(model_id))
            target = self.targets.add(TargetKind.HUB, service_id, model_id)
            added.append(target)
            info(f"Hub model '{model_id}' (Service ID: {service_id}) added for service creation.")
            if self.audit:
                self.audit.log_event(AuditEventType.TARGET, "Hub model selected", resource=service_id,
                                     details={"model_id": model_id, "port": target.port})
        return added

    def run(self: Self) -> List[Target]:
        info("Fetching list of available OpenLLM models from Hub...")
        available = self.tool.list_available_models()
        if not available:
            warn("No models found on Hub or failed to parse.")
            return []

        info("Available models from Hub:")
        for model_id in available:
            console.print(f"  - {model_id}", markup=False)
        blank()

        selection = self.prompter.ask(
            "Enter Hub model IDs to install and run, separated by spaces (e.g., opt llama)"
        )
        return self.add_selection(selection.split())


def collect_targets(
    prompter: Prompter,
    targets: TargetCollection,
    account: ServiceAccount,
    tool: OpenLLMTool,
    audit: Optional[AuditLogger] = None,
) -> TargetCollection:
    """Run the local and hub sub-flows the operator opts into."""
    info("--- Local Model Setup ---")
    if prompter.confirm("Do you want to set up and serve local model files?"):
        LocalModelFlow(prompter, targets, account, audit).run()

    info("--- Hugging Face Hub Model Selection ---")
    if prompter.confirm("Do you want to list and select models from Hugging Face Hub to install?"):
        HubSelectionFlow(prompter, targets, tool, audit).run()

    logger.debug("Collected %d target(s)", len(targets))
    return targets
