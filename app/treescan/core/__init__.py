"""Core functionality for treescan: XDG paths and configuration."""

from treescan.core.config import (
    ConfigError,
    ConfigNotFoundError,
    ConfigParseError,
    TreeScanConfig,
    load_config,
    load_config_or_default,
    save_config,
)
from treescan.core.paths import (
    get_cache_dir,
    get_config_dir,
    get_config_path,
    get_default_cache_path,
)

__all__ = [
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "TreeScanConfig",
    "get_cache_dir",
    "get_config_dir",
    "get_config_path",
    "get_default_cache_path",
    "load_config",
    "load_config_or_default",
    "save_config",
]
