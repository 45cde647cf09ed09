"""
Configuration loader for cwl.yaml files and CWL_* environment variables.
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

CONFIG_FILENAME = "cwl.yaml"
CONFIG_ENV_VAR = "CWL_CONFIG"

# Environment variable -> TransportConfig field
_ENV_FIELDS = {
    "CWL_LOG_GROUP_NAME": "log_group_name",
    "CWL_LOG_STREAM_NAME": "log_stream_name",
    "CWL_ROTATION_INTERVAL_MS": "rotation_interval_ms",
    "CWL_FLUSH_INTERVAL_MS": "flush_interval_ms",
    "CWL_DEBOUNCE_MS": "debounce_ms",
    "CWL_MAX_WAIT_MS": "max_wait_ms",
    "CWL_MAX_DEFERRED": "max_deferred",
    "AWS_REGION": "aws_region",
    "AWS_ACCESS_KEY_ID": "aws_access_key_id",
    "AWS_SECRET_ACCESS_KEY": "aws_secret_access_key",
}

_INT_FIELDS = {
    "rotation_interval_ms",
    "flush_interval_ms",
    "debounce_ms",
    "max_wait_ms",
    "max_deferred",
}


class ConfigError(ValueError):
    """Raised when the transport configuration is missing or invalid."""


@dataclass
class TransportConfig:
    """Configuration for CloudWatchTransport."""
    log_group_name: str = ""
    log_stream_name: str = ""
    rotation_interval_ms: Optional[int] = 10 * 60 * 1000  # 0/None disables rotation
    flush_interval_ms: int = 1000  # Periodic flush check in RecordBuffer.add
    debounce_ms: int = 1000  # Quiet time before a scheduled flush
    max_wait_ms: int = 5000  # Longest a flush request waits under load
    max_deferred: int = 10_000  # Records waiting for buffer space
    aws_region: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    @property
    def rotation_enabled(self) -> bool:
        return bool(self.rotation_interval_ms)

    def validate(self) -> "TransportConfig":
        """
        Check required fields and numeric ranges.

        Raises:
            ConfigError: On the first invalid value found
        """
        if not self.log_group_name:
            raise ConfigError("log_group_name is required")
        if not self.log_stream_name:
            raise ConfigError("log_stream_name is required")
        for name in sorted(_INT_FIELDS):
            value = getattr(self, name)
            if value is None and name == "rotation_interval_ms":
                continue
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"{name} must be a non-negative integer, got {value!r}")
        if self.max_deferred < 1:
            raise ConfigError("max_deferred must be at least 1")
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TransportConfig":
        """
        Build a config from a mapping, ignoring unknown keys.

        Integer fields given as strings (e.g. from the environment) are
        converted.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key in _INT_FIELDS and isinstance(value, str):
                try:
                    value = int(value) if value.strip() else None
                except ValueError:
                    raise ConfigError(f"{key} must be an integer, got {value!r}")
            values[key] = value
        # An explicit null only makes sense for rotation
        for key in _INT_FIELDS - {"rotation_interval_ms"}:
            if key in values and values[key] is None:
                del values[key]
        return cls(**values)


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> TransportConfig:
    """Create a TransportConfig from CWL_* and AWS_* environment variables."""
    return TransportConfig.from_dict(_env_values(environ))


def _env_values(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Raw field values from the environment, keyed by TransportConfig field."""
    environ = os.environ if environ is None else environ
    return {
        field_name: environ[env_name]
        for env_name, field_name in _ENV_FIELDS.items()
        if env_name in environ
    }


def load_config(
    config_path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> TransportConfig:
    """
    Load the transport configuration.

    Search order:
    1. Provided config_path
    2. CWL_CONFIG environment variable
    3. ./cwl.yaml in current directory
    4. cwl.yaml in parent directories (walk up the tree)
    5. CWL_* environment variables alone

    Values from a file can be overridden by environment variables, and
    both by explicit overrides (e.g. command-line flags).

    Args:
        config_path: Optional explicit path to config file
        overrides: Field values that take precedence over everything else

    Returns:
        Validated TransportConfig

    Raises:
        FileNotFoundError: If an explicit config file does not exist
        ConfigError: If the resulting config is invalid
    """
    path = config_path or os.environ.get(CONFIG_ENV_VAR) or _find_config_file()

    data: Dict[str, Any] = {}
    if path:
        data.update(_load_from_path(str(path)))

    data.update(_env_values())

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    return TransportConfig.from_dict(data).validate()


def _find_config_file() -> Optional[Path]:
    current = Path.cwd()
    while True:
        config_file = current / CONFIG_FILENAME
        if config_file.exists():
            return config_file

        # Stop at filesystem root
        if current == current.parent:
            return None
        current = current.parent


def _load_from_path(path: str) -> Dict[str, Any]:
    """Load a config mapping from a YAML or JSON file."""
    with open(path, "r") as f:
        if path.endswith(".json"):
            config_dict = json.load(f)
        else:
            config_dict = yaml.safe_load(f) or {}
    if not isinstance(config_dict, dict):
        raise ConfigError(f"{path} must contain a mapping")
    # Accept the settings either at top level or under a "cloudwatch" key
    section = config_dict.get("cloudwatch", config_dict)
    if not isinstance(section, dict):
        raise ConfigError(f"'cloudwatch' section in {path} must be a mapping")
    return section
