"""Scan configuration and settings.

This module provides the configuration model and I/O functions for
tree-wide scan settings, such as whether scans cross filesystem
boundaries and how deep the CLI renders trees.

Configuration is stored in ~/.config/treescan/config.toml
"""

import logging
import os
import tomllib
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from treescan.core.paths import get_config_path

logger = logging.getLogger(__name__)


class TreeScanConfig(BaseModel):
    """Configuration for directory scans.

    Attributes:
        cross_filesystems: Descend into directories on other filesystems.
            When off, mount points show up as excluded nodes.
        display_depth: Number of levels the CLI renders below a toplevel.
        compress_cache: Write the default cache file gzip-compressed.
    """

    model_config = ConfigDict(extra="forbid")

    cross_filesystems: Annotated[
        bool,
        Field(description="Descend into directories on other filesystems"),
    ] = False
    display_depth: Annotated[
        int,
        Field(ge=0, le=64, description="Rendered tree depth (0-64)"),
    ] = 2
    compress_cache: Annotated[
        bool,
        Field(description="Gzip the default cache file"),
    ] = True


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when the config file is not found."""


class ConfigParseError(ConfigError):
    """Raised when the config file cannot be parsed."""


def load_config(path: Path | None = None) -> TreeScanConfig:
    """Load configuration from a TOML file.

    Args:
        path: Path to the config file. If None, uses the default config path.

    Returns:
        Validated TreeScanConfig object.

    Raises:
        ConfigNotFoundError: If the config file doesn't exist.
        ConfigParseError: If the TOML syntax is invalid.
        ConfigError: If the content doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        raise ConfigNotFoundError(f"Config not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Invalid TOML syntax: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config: {e}") from e

    try:
        return TreeScanConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config content: {e}") from e


def load_config_or_default(path: Path | None = None) -> TreeScanConfig:
    """Load configuration, falling back to defaults if there is no file.

    Args:
        path: Path to the config file. If None, uses the default config path.

    Returns:
        Loaded or default TreeScanConfig.

    Raises:
        ConfigParseError: If the TOML syntax is invalid.
        ConfigError: If the content doesn't match the schema.
    """
    try:
        return load_config(path)
    except ConfigNotFoundError:
        logger.debug("No config file, using defaults")
        return TreeScanConfig()


def save_config(config: TreeScanConfig, path: Path | None = None) -> Path:
    """Save configuration to a TOML file.

    The file is written atomically by first writing to a temporary file
    and then using os.replace() for atomic rename.

    Args:
        config: The TreeScanConfig object to save.
        path: Path to save the config. If None, uses the default config path.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    config_path = path or get_config_path()

    data = _config_to_dict(config)

    tmp_path: Path | None = None
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            mode="wb",
            dir=config_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(config_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ConfigError(f"Failed to write config: {e}") from e

    return config_path


def _config_to_dict(config: TreeScanConfig) -> dict[str, object]:
    """Convert TreeScanConfig to a dictionary for TOML serialization.

    Only includes values that differ from the defaults, except
    ``cross_filesystems`` which is always written to document the choice.

    Args:
        config: The TreeScanConfig to convert.

    Returns:
        Dictionary ready for TOML serialization.
    """
    defaults = TreeScanConfig()
    result: dict[str, object] = {"cross_filesystems": config.cross_filesystems}

    if config.display_depth != defaults.display_depth:
        result["display_depth"] = config.display_depth

    if config.compress_cache != defaults.compress_cache:
        result["compress_cache"] = config.compress_cache

    return result
