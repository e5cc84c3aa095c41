"""systemd unit rendering and management for model services."""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Self

from jinja2 import Environment, FileSystemLoader

from .errors import ServiceError
from .runner import CommandRunner
from .targets import Target
from .tool import OpenLLMTool

logger = logging.getLogger(__name__)

TEMPLATE_NAME = "openllm.service.j2"
UNIT_FILE_MODE = 0o644


def escape_specifiers(value: str) -> str:
    """Escape ``%`` so systemd does not expand it as a specifier."""
    return value.replace("%", "%%")


def quote_value(value: str) -> str:
    """Escape a value placed inside a double-quoted unit setting."""
    return escape_specifiers(value.replace("\\", "\\\\").replace('"', '\\"'))


def quote_argument(argument: str) -> str:
    """Double-quote one ExecStart argument, escaping ``$`` and ``%``."""
    return '"' + quote_value(argument).replace("$", "$$") + '"'


def needs_quoting(argument: str) -> bool:
    """True when systemd would split or unescape the argument if left bare."""
    return not argument or any(c.isspace() or c in "\"'\\;" for c in argument)


def format_exec_start(tool: OpenLLMTool, target: Target) -> str:
    """Render the ExecStart command line.

    The model reference is always quoted; any other argument is quoted when it
    holds whitespace, quotes or backslashes, e.g. a storage path with a space.
    """
    argv = tool.start_command(target)
    model_index = 2 + len(target.leading_arguments)
    parts = [
        quote_argument(arg) if index == model_index or needs_quoting(arg)
        else escape_specifiers(arg).replace("$", "$$")
        for index, arg in enumerate(argv)
    ]
    return " ".join(parts)


class UnitRenderer:
    """Renders the unit file serving one target."""

    def __init__(
        self: Self,
        tool: OpenLLMTool,
        user: str,
        group: str,
        storage: Path,
        restart_sec: int = 10,
        offline_mode: bool = True,
        template_dir: Optional[Path] = None,
    ) -> None:
        self.tool = tool
        self.user = user
        self.group = group
        self.storage = Path(storage)
        self.restart_sec = restart_sec
        self.offline_mode = offline_mode

        if template_dir is None:
            template_dir = Path(__file__).parent / "templates"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.jinja_env.filters["specifiers"] = escape_specifiers
        self.jinja_env.filters["quoted_value"] = quote_value

    def environment(self: Self) -> Dict[str, str]:
        """Environment variables shared by every model service."""
        env = {
            "OPENLLM_HOME": str(self.storage),
            "PATH": f"{self.tool.venv_path / 'bin'}:/usr/bin:/bin",
        }
        if self.offline_mode:
            env["TRANSFORMERS_OFFLINE"] = "1"
            env["HF_HUB_OFFLINE"] = "1"
        return env

    def render(self: Self, target: Target) -> str:
        template = self.jinja_env.get_template(TEMPLATE_NAME)
        context = {
            'service_id': target.service_id,
            'user': self.user,
            'group': self.group,
            'working_directory': str(self.storage),
            'environment': self.environment(),
            'exec_start': format_exec_start(self.tool, target),
            'restart_policy': 'always',
            'restart_sec': self.restart_sec,
            'service_type': 'simple',
            'wanted_by': 'multi-user.target',
        }
        return template.render(**context)


class UnitManager:
    """Installs and controls units through systemctl."""

    def __init__(self: Self, runner: CommandRunner, systemd_dir: Path) -> None:
        self.runner = runner
        self.systemd_dir = Path(systemd_dir)

    def unit_path(self: Self, unit_name: str) -> Path:
        return self.systemd_dir / unit_name

    def install(self: Self, unit_name: str, content: str) -> Path:
        """Write a unit file readable by everyone, writable by root."""
        path = self.unit_path(unit_name)
        try:
            path.write_text(content)
            os.chmod(path, UNIT_FILE_MODE)
        except OSError as e:
            raise ServiceError(
                f"Cannot write unit file {path}: {e.strerror or e}",
                [f"Check that {self.systemd_dir} exists and is writable by root"]
            ) from e
        logger.debug("Wrote %s", path)
        return path

    def _systemctl(self: Self, *args: str) -> None:
        result = self.runner.run(["systemctl", *args])
        if result.returncode != 0:
            raise ServiceError(
                f"systemctl {' '.join(args)} failed: {(result.stderr or '').strip()}",
                ["Inspect 'journalctl -xe' for systemd errors"]
            )

    def reload(self: Self) -> None:
        self._systemctl("daemon-reload")

    def enable(self: Self, unit_name: str) -> None:
        self._systemctl("enable", unit_name)

    def start(self: Self, unit_name: str) -> bool:
        """Start a unit; failure is reported, not raised."""
        result = self.runner.run(["systemctl", "start", unit_name])
        if result.returncode != 0:
            logger.debug("systemctl start %s failed: %s", unit_name, result.stderr)
        return result.returncode == 0
