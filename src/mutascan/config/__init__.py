"""
Configuration management for mutascan.

Scan settings are resolved from several sources in order of priority:
1. Command line flags (highest priority)
2. Environment variables (MUTASCAN_*)
3. Local .env file in the working directory
4. YAML config file (--config, or ~/.mutascan/config.yml)
5. ScanConfig defaults (lowest priority)
"""

from .env_loader import default_config_path, load_env_file, load_yaml_config
from .getters import env_key, get_config
from .scan_config import MODES, ScanConfig, parse_header_lines, resolve_scan_config

__all__ = [
    # env_loader
    "default_config_path",
    "load_env_file",
    "load_yaml_config",
    # getters
    "env_key",
    "get_config",
    # scan_config
    "MODES",
    "ScanConfig",
    "parse_header_lines",
    "resolve_scan_config",
]
