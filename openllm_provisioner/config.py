"""Configuration loading and validation for the OpenLLM provisioner."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Self

from .errors import ConfigurationError

CONFIG_ENV_VAR = "OPENLLM_PROVISIONER_CONFIG"
DEFAULT_CONFIG_PATH = Path("/etc/openllm-provisioner/config.json")


@dataclass(frozen=True)
class Settings:
    """Validated provisioning settings."""

    service_user: str = "openllm"
    data_group: str = "openllm_data"
    default_model_dir: str = "/opt/openllm_models"
    python_cmd: str = "python3"
    pip_cmd: str = "pip3"
    start_port: int = 3000
    unit_prefix: str = "openllm"
    systemd_dir: str = "/etc/systemd/system"
    restart_sec: int = 10
    tool_package: str = "openllm"
    system_packages: List[str] = field(default_factory=lambda: ["python3-venv", "python3-pip"])
    offline_mode: bool = True
    log_dir: str = "/var/log/openllm-provisioner"


class Config:
    """Loads provisioner settings from an optional JSON file."""

    CONFIG_SCHEMA = {
        'service_user': {'type': str, 'validator': 'validate_name'},
        'data_group': {'type': str, 'validator': 'validate_name'},
        'default_model_dir': {'type': str, 'validator': 'validate_absolute_path'},
        'python_cmd': {'type': str},
        'pip_cmd': {'type': str},
        'start_port': {'type': int, 'min': 1, 'max': 65535},
        'unit_prefix': {'type': str, 'validator': 'validate_name'},
        'systemd_dir': {'type': str, 'validator': 'validate_absolute_path'},
        'restart_sec': {'type': int, 'min': 0, 'max': 3600},
        'tool_package': {'type': str},
        'system_packages': {'type': list},
        'offline_mode': {'type': bool},
        'log_dir': {'type': str, 'validator': 'validate_absolute_path'},
    }

    def __init__(self: Self, config_file: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_file: Explicit configuration path. When omitted the path
                comes from the environment, then the system default.
        """
        if config_file is None:
            env_path = os.environ.get(CONFIG_ENV_VAR)
            config_file = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
        self.config_file = Path(config_file)

    def _validate_config_schema(self: Self, config: Dict[str, Any]) -> None:
        """Validate configuration against schema.

        Raises:
            ConfigurationError: If validation fails.
        """
        errors = []

        unknown = sorted(set(config) - set(self.CONFIG_SCHEMA))
        if unknown:
            errors.append(f"Unknown field(s): {', '.join(unknown)}")

        for key, schema in self.CONFIG_SCHEMA.items():
            if key not in config:
                continue
            value = config[key]

            # bool is a subclass of int; reject it for integer fields
            if not isinstance(value, schema['type']) or (
                schema['type'] is int and isinstance(value, bool)
            ):
                errors.append(f"Field '{key}' must be of type {schema['type'].__name__}")
                continue

            if 'min' in schema and value < schema['min']:
                errors.append(f"Field '{key}' must be >= {schema['min']}")
            if 'max' in schema and value > schema['max']:
                errors.append(f"Field '{key}' must be <= {schema['max']}")

            if 'validator' in schema:
                validator = getattr(self, schema['validator'])
                if not validator(value):
                    errors.append(f"Field '{key}' failed validation")

        if 'system_packages' in config and isinstance(config['system_packages'], list):
            if not all(isinstance(p, str) and p for p in config['system_packages']):
                errors.append("Field 'system_packages' must be a list of package names")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                [f"Fix {self.config_file} or remove it to use the defaults"]
            )

    @staticmethod
    def validate_name(name: str) -> bool:
        """Account, group and unit prefixes must be non-empty and free of separators."""
        return bool(name) and not any(c in name for c in "/: \t\n")

    @staticmethod
    def validate_absolute_path(path: str) -> bool:
        """Validate that a path setting is absolute."""
        return os.path.isabs(path)

    def load(self: Self) -> Dict[str, Any]:
        """Load the raw configuration dictionary.

        Returns:
            Parsed configuration, or an empty dict when the file is absent.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        if not self.config_file.exists():
            return {}

        try:
            with open(self.config_file, 'r') as f:
                config = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigurationError(
                f"Failed to load configuration from {self.config_file}: {e}",
                ["Check that the file contains a single JSON object"]
            )

        if not isinstance(config, dict):
            raise ConfigurationError(
                f"Configuration in {self.config_file} must be a JSON object"
            )

        self._validate_config_schema(config)
        return config

    def settings(self: Self) -> Settings:
        """Build validated settings, applying defaults for missing keys."""
        return Settings(**self.load())
