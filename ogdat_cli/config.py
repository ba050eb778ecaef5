"""Configuration management for the checker and the watcher.

This module provides layered configuration with the following precedence
(highest to lowest):
1. CLI argument
2. Environment variable (OGDAT_<KEY>)
3. Config file (``ogdat.yaml`` in the working directory)
4. Built-in default

Usage:
    from ogdat_cli.config import get_int_setting, get_setting, set_setting

    # Get a setting with full precedence resolution
    portal = get_setting("portal_url", cli_value=cli_portal, config_dir=Path.cwd())

    # Integer settings are validated
    workers = get_int_setting("workers", config_dir=Path.cwd())

    # Persist a setting in ogdat.yaml
    set_setting(Path.cwd(), "workers", 8)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from ogdat_cli.errors import ConfigInvalidValueError, ConfigParseError
from ogdat_cli.portal import DEFAULT_PORTAL_URL

# Built-in defaults; unknown keys are still allowed in the file
DEFAULTS: dict[str, Any] = {
    "portal_url": DEFAULT_PORTAL_URL,
    "workers": 4,
    # Minutes between heartbeats of the watcher
    "heartbeat_interval": 60,
    # Seconds per HTTP request
    "timeout": 10,
    "store_path": ".ogdat/tracking.json",
    "timezone": "Europe/Vienna",
}

KNOWN_SETTINGS: frozenset[str] = frozenset(DEFAULTS)

CONFIG_FILENAME = "ogdat.yaml"


def get_config_path(config_dir: Path) -> Path:
    """Get the path to the config file in a directory.

    Args:
        config_dir: Directory holding ogdat.yaml.

    Returns:
        Path to ogdat.yaml
    """
    return config_dir / CONFIG_FILENAME


def load_config(config_dir: Path) -> dict[str, Any]:
    """Load configuration from ogdat.yaml.

    Args:
        config_dir: Directory holding ogdat.yaml.

    Returns:
        Config dictionary. Returns empty dict if file doesn't exist.

    Raises:
        ConfigParseError: If the file is not a YAML mapping.
    """
    config_file = get_config_path(config_dir)

    if not config_file.exists():
        return {}

    content = config_file.read_text()
    if not content.strip():
        return {}

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise ConfigParseError(str(config_file), str(err)) from err
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigParseError(str(config_file), "top level must be a mapping")
    return data


def save_config(config_dir: Path, config: dict[str, Any]) -> None:
    """Save configuration to ogdat.yaml.

    Args:
        config_dir: Directory holding ogdat.yaml.
        config: Config dictionary to save.
    """
    config_dir.mkdir(parents=True, exist_ok=True)

    # Use default_flow_style=False for readable multi-line YAML
    content = yaml.safe_dump(config, default_flow_style=False, sort_keys=False)
    get_config_path(config_dir).write_text(content)


def _get_env_var_name(key: str) -> str:
    """Convert a setting key to environment variable name.

    Args:
        key: Setting key (e.g., "portal_url")

    Returns:
        Environment variable name (e.g., "OGDAT_PORTAL_URL")
    """
    return f"OGDAT_{key.upper()}"


def get_setting(
    key: str,
    cli_value: Any | None = None,
    config_dir: Path | None = None,
) -> Any | None:
    """Resolve a setting with full precedence.

    Precedence (highest to lowest):
    1. CLI argument (cli_value)
    2. Environment variable (OGDAT_<KEY>)
    3. Config file
    4. Built-in default (None for unknown keys)

    Args:
        key: Setting key (e.g., "portal_url", "workers")
        cli_value: Value passed via CLI argument (highest precedence)
        config_dir: Directory holding ogdat.yaml

    Returns:
        Resolved value, or None if not found at any level.
    """
    if cli_value is not None:
        return cli_value

    env_value = os.environ.get(_get_env_var_name(key))
    if env_value is not None:
        return env_value

    if config_dir is not None:
        config = load_config(config_dir)
        if key in config:
            return config[key]

    return DEFAULTS.get(key)


def get_int_setting(
    key: str,
    cli_value: int | None = None,
    config_dir: Path | None = None,
    minimum: int = 1,
) -> int:
    """Resolve an integer setting.

    Environment variables arrive as strings and are converted here.

    Raises:
        ConfigInvalidValueError: If the value is not an integer >= minimum.
    """
    value = get_setting(key, cli_value=cli_value, config_dir=config_dir)
    # bool is an int subclass; "true" in YAML is not a worker count
    if isinstance(value, bool):
        raise ConfigInvalidValueError(key, value, f"integer >= {minimum}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigInvalidValueError(key, value, f"integer >= {minimum}") from None
    if number < minimum:
        raise ConfigInvalidValueError(key, value, f"integer >= {minimum}")
    return number


def set_setting(config_dir: Path, key: str, value: Any) -> None:
    """Set a configuration value in ogdat.yaml.

    Creates the config file if it doesn't exist.
    """
    config = load_config(config_dir)
    config[key] = value
    save_config(config_dir, config)


def unset_setting(config_dir: Path, key: str) -> bool:
    """Remove a configuration value from ogdat.yaml.

    Returns:
        True if the key existed and was removed, False if key didn't exist.
    """
    config = load_config(config_dir)
    if key not in config:
        return False
    del config[key]
    save_config(config_dir, config)
    return True


def list_settings(config_dir: Path | None = None) -> dict[str, dict[str, Any]]:
    """List all settings with their sources.

    Returns:
        Dict mapping setting keys to {"value": ..., "source": ...} where
        source is "env", "file" or "default".
    """
    config = load_config(config_dir) if config_dir else {}
    all_keys = set(config.keys()) | KNOWN_SETTINGS

    result: dict[str, dict[str, Any]] = {}
    for key in sorted(all_keys):
        value = get_setting(key, config_dir=config_dir)
        source = _get_setting_source(key, config_dir)
        result[key] = {"value": value, "source": source}
    return result


def _get_setting_source(key: str, config_dir: Path | None) -> str:
    """Determine the source of a setting's value.

    Returns:
        Source string: "env", "file", or "default"
    """
    if _get_env_var_name(key) in os.environ:
        return "env"

    if config_dir is not None and key in load_config(config_dir):
        return "file"

    return "default"
