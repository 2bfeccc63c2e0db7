"""Immutable scan settings and their layered resolution."""

from dataclasses import MISSING, dataclass, fields
from pathlib import Path
from typing import Any

from mutascan.errors import ConfigError

from .env_loader import load_yaml_config
from .getters import get_config

MODES = ("simple", "advanced")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class ScanConfig:
    """Settings for one scan. Never mutated after the scan starts."""

    target: str | None = None
    list_file: str | None = None
    mode: str = "simple"
    threads: int = 50
    timeout: float = 5.0
    rate_limit: int = 100
    output: str = "scan_results.json"
    proxy: str | None = None
    headers: tuple[str, ...] = ()
    tags: str | None = None
    payloads: str | None = None
    replace_payloads: bool = False
    verbose: bool = False
    scope: bool = False
    dry_run: bool = False
    enable_crawler: bool = True
    crawler_depth: int = 3
    crawler_max_urls: int = 50
    crawler_timeout: float = 60.0
    enable_nuclei: bool = True
    noise_threshold: int = 3
    time_delay_threshold_ms: int = 4000
    mutation_seed: int = 0
    resume: bool = False
    state_file: str = ".mutascan-state.json"

    @property
    def advanced(self) -> bool:
        return self.mode == "advanced"

    def validate(self) -> "ScanConfig":
        """Raise ConfigError for settings no scan can run with."""
        if self.mode not in MODES:
            raise ConfigError(f"Unsupported mode '{self.mode}'. Supported: {', '.join(MODES)}")
        if self.threads <= 0:
            raise ConfigError(f"threads must be > 0, got {self.threads}")
        if self.rate_limit <= 0:
            raise ConfigError(f"rate limit must be > 0, got {self.rate_limit}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be > 0, got {self.timeout}")
        if self.crawler_depth < 0 or self.crawler_max_urls < 0:
            raise ConfigError("crawler depth and max URLs cannot be negative")
        if self.crawler_timeout <= 0:
            raise ConfigError(f"crawler timeout must be > 0, got {self.crawler_timeout}")
        if self.noise_threshold < 1:
            raise ConfigError(f"noise threshold must be >= 1, got {self.noise_threshold}")
        for line in self.headers:
            if ":" not in line:
                raise ConfigError(f"Invalid header '{line}', expected 'Name: value'")
        return self

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready settings, as stored in scan checkpoints."""
        data = {item.name: getattr(self, item.name) for item in fields(self)}
        data["headers"] = list(self.headers)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanConfig":
        """Rebuild settings saved by :meth:`to_dict`; unknown keys are ignored."""
        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "headers" in values:
            values["headers"] = tuple(str(line) for line in values["headers"])
        return cls(**values).validate()

    def parsed_headers(self) -> dict[str, str]:
        """Return the custom headers as a name/value mapping."""
        parsed: dict[str, str] = {}
        for line in self.headers:
            name, _, value = line.partition(":")
            if name.strip():
                parsed[name.strip()] = value.strip()
        return parsed


def parse_header_lines(raw: str | list[str] | tuple[str, ...] | None) -> tuple[str, ...]:
    """Split ``"A: 1; B: 2"`` style input into individual header lines."""
    if raw is None:
        return ()
    items = [raw] if isinstance(raw, str) else list(raw)
    lines: list[str] = []
    for item in items:
        for part in str(item).split(";"):
            part = part.strip()
            if part:
                lines.append(part)
    return tuple(lines)


def _coerce(name: str, value: Any, default: Any) -> Any:
    if name == "headers":
        return parse_header_lines(value)
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUTHY:
            return True
        if text in _FALSY:
            return False
        raise ConfigError(f"{name} expects a boolean, got {value!r}")
    try:
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} expects a number, got {value!r}") from exc
    return str(value)


def resolve_scan_config(
    overrides: dict[str, Any] | None = None,
    config_file: Path | None = None,
) -> ScanConfig:
    """Build a validated ScanConfig.

    ``overrides`` holds flag values; ``None`` entries fall through to the
    environment, the YAML file and finally the field default.
    """
    overrides = overrides or {}
    yaml_config = load_yaml_config(config_file)
    values: dict[str, Any] = {}
    for field in fields(ScanConfig):
        default = field.default if field.default is not MISSING else None
        value = overrides.get(field.name)
        if value is None:
            value = get_config(field.name, config_file, yaml_config=yaml_config)
        if value is None:
            continue
        values[field.name] = _coerce(field.name, value, default)
    return ScanConfig(**values).validate()
