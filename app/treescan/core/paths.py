"""Where treescan keeps its files.

Locations follow the XDG Base Directory Specification:

- ``$XDG_CONFIG_HOME/treescan/config.toml`` (default ``~/.config``)
- ``$XDG_CACHE_HOME/treescan/last-scan.jsonl.gz`` (default ``~/.cache``)

An unset or empty variable falls back to the default below the home
directory.
"""

import os
from pathlib import Path

APP_NAME = "treescan"

CONFIG_FILENAME = "config.toml"
CACHE_BASENAME = "last-scan.jsonl"


def _xdg_base(env_var: str, fallback: str) -> Path:
    value = os.environ.get(env_var)
    return Path(value) if value else Path.home() / fallback


def get_config_dir() -> Path:
    """Directory holding the config file."""
    return _xdg_base("XDG_CONFIG_HOME", ".config") / APP_NAME


def get_cache_dir() -> Path:
    """Directory holding saved scans.

    Saved scans can always be recreated by scanning again, which is
    why they go to the cache directory and not to XDG state.
    """
    return _xdg_base("XDG_CACHE_HOME", ".cache") / APP_NAME


def get_config_path() -> Path:
    """Path of the TOML config file."""
    return get_config_dir() / CONFIG_FILENAME


def get_default_cache_path(compress: bool = True) -> Path:
    """Path used by ``scan --save`` and by ``show`` without arguments.

    Args:
        compress: Return the gzip variant (``.jsonl.gz``).

    Returns:
        Path inside the cache directory.
    """
    suffix = ".gz" if compress else ""
    return get_cache_dir() / f"{CACHE_BASENAME}{suffix}"


def _make_dir(path: Path, purpose: str) -> Path:
    """Create ``path`` with its parents.

    Raises:
        RuntimeError: With a user-facing message if creation fails.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        raise RuntimeError(f"Cannot create {purpose} directory {path}: Permission denied") from e
    except OSError as e:
        raise RuntimeError(f"Cannot create {purpose} directory {path}: {e}") from e
    return path


def ensure_config_dir() -> Path:
    """Create the config directory if needed and return it."""
    return _make_dir(get_config_dir(), "config")


def ensure_cache_dir() -> Path:
    """Create the cache directory if needed and return it."""
    return _make_dir(get_cache_dir(), "cache")
