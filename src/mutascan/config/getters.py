"""Configuration getter functions."""

import os
from pathlib import Path
from typing import Any

from .env_loader import load_env_file, load_yaml_config

ENV_PREFIX = "MUTASCAN_"


def env_key(key: str) -> str:
    """Map a ScanConfig field name to its environment variable."""
    return f"{ENV_PREFIX}{key.upper()}"


def get_config(
    key: str,
    config_file: Path | None = None,
    default: Any = None,
    yaml_config: dict[str, Any] | None = None,
) -> Any:
    """
    Get configuration value with priority:
    1. Environment variable (MUTASCAN_<KEY>)
    2. .env file in the working directory
    3. YAML config file
    4. Default value

    Args:
        key: ScanConfig field name
        config_file: Optional explicit YAML path
        default: Default value if not found
        yaml_config: Already loaded YAML mapping, skips reading the file

    Returns:
        Configuration value or default
    """
    name = env_key(key)

    env_value = os.environ.get(name)
    if env_value:
        return env_value

    local_env = load_env_file(Path.cwd() / ".env")
    if local_env.get(name):
        return local_env[name]

    if yaml_config is None:
        yaml_config = load_yaml_config(config_file)
    for candidate in (key, key.replace("_", "-")):
        if candidate in yaml_config:
            return yaml_config[candidate]

    return default
