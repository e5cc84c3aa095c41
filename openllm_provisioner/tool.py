"""Client for the OpenLLM command installed inside the runtime environment."""

import json
import logging
import re
from pathlib import Path
from typing import Any, List, Optional, Self

from .output import warn
from .runner import ServiceAccount
from .targets import Target

logger = logging.getLogger(__name__)

_TEXT_SEPARATORS = re.compile(r'[\s,\[\]"]+')
_IDENTIFIER_KEYS = ("model_id", "name", "model", "id")


def _identifier_from(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry.strip() or None
    if isinstance(entry, dict):
        for key in _IDENTIFIER_KEYS:
            value = entry.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _unique(identifiers: List[str]) -> List[str]:
    seen = set()
    result = []
    for identifier in identifiers:
        if identifier not in seen:
            seen.add(identifier)
            result.append(identifier)
    return result


def parse_model_listing(output: str) -> List[str]:
    """Extract model identifiers from ``openllm models`` output.

    JSON is preferred: a list of identifiers, a list of objects carrying a
    ``model_id``/``name`` field, or an object keyed by identifier. Anything
    that is not valid JSON is split on whitespace, commas, brackets and
    quotes instead.
    """
    output = output.strip()
    if not output:
        return []

    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        warn("Model listing is not valid JSON. Parsing it as plain text; complex names may be split.")
        return _unique([token for token in _TEXT_SEPARATORS.split(output) if token])

    if isinstance(data, dict):
        return _unique([key for key in data if isinstance(key, str) and key.strip()])
    if isinstance(data, list):
        return _unique([i for i in (_identifier_from(entry) for entry in data) if i])
    identifier = _identifier_from(data)
    return [identifier] if identifier else []


class OpenLLMTool:
    """Runs ``openllm`` as the service account."""

    def __init__(self: Self, account: ServiceAccount, venv_path: Path) -> None:
        self.account = account
        self.venv_path = Path(venv_path)

    @property
    def executable(self: Self) -> Path:
        return self.venv_path / "bin" / "openllm"

    def list_available_models(self: Self) -> List[str]:
        """Ask OpenLLM which hub models it can serve.

        Returns an empty list, after warning, when the query yields nothing.
        """
        result = self.account.run([
            str(self.executable), "models", "--show-available", "--quiet", "--output", "json"
        ])
        if result.returncode != 0:
            logger.debug("openllm models exited with %s: %s", result.returncode, result.stderr)
        if not (result.stdout or "").strip():
            warn("Could not fetch available models from Hub. Maybe there's no network or OpenLLM has an issue.")
            return []
        return parse_model_listing(result.stdout)

    def import_model(self: Self, service_id: str, path: str, backend: Optional[str] = None) -> bool:
        """Register a local model with OpenLLM under the given id.

        Part of the tool interface alongside listing and starting. Provisioning
        serves local targets straight from their path, so it never imports.
        """
        command = [str(self.executable), "import", service_id, path]
        if backend:
            command.extend(["--backend", backend])
        result = self.account.run(command)
        if result.returncode != 0:
            logger.debug("openllm import failed for %s: %s", service_id, result.stderr)
        return result.returncode == 0

    def start_command(self: Self, target: Target) -> List[str]:
        """Argument vector that serves a target on its port."""
        return [str(self.executable), "start", *target.start_argument, "--port", str(target.port)]
