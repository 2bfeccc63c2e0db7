"""Environment file and YAML configuration loading."""

import logging
from pathlib import Path
from typing import Any

import yaml

from mutascan.errors import ConfigError

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    """Return the per-user config file location."""
    return Path.home() / ".mutascan" / "config.yml"


def load_env_file(env_path: Path) -> dict[str, str]:
    """Read ``KEY=value`` pairs from a .env file; a missing file yields ``{}``.

    Comment and blank lines are skipped, an ``export`` prefix is allowed and
    one layer of matching quotes is removed from values.
    """
    if not env_path.exists():
        return {}
    pairs: dict[str, str] = {}
    for raw in env_path.read_text().splitlines():
        entry = raw.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, _, value = entry.removeprefix("export ").partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        pairs[key.strip()] = value
    return pairs


def load_yaml_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load scan defaults from a YAML file.

    An explicitly passed path must exist and parse; the implicit per-user
    file is optional.
    """
    explicit = config_path is not None
    path = config_path if config_path is not None else default_config_path()
    if not path.exists():
        if explicit:
            raise ConfigError(f"config file not found: {path}")
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        if explicit:
            raise ConfigError(f"cannot read config file {path}: {exc}") from exc
        logger.warning("Ignoring unreadable config file %s", path, exc_info=True)
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping, got {type(data).__name__}")
    return data
