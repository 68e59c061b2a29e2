"""User settings loader (YAML file plus environment overrides)."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from portfolio_scanner.core.models import ScanSettings
from portfolio_scanner.exceptions import ConfigurationError

DEFAULT_SETTINGS_FILE = "settings.yaml"

# Environment variable -> ScanSettings field
ENV_OVERRIDES = {
    "ETHERSCAN_API_KEY": "etherscan_api_key",
    "ETHPLORER_API_KEY": "ethplorer_api_key",
    "COINGECKO_API_KEY": "coingecko_api_key",
    "PORTFOLIO_SCANNER_NETWORK": "network",
    "PORTFOLIO_SCANNER_CACHE": "cache_path",
}


def load_settings(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> ScanSettings:
    """
    Build scan settings from a YAML file, environment variables and overrides.

    Later sources win: file, then environment, then keyword overrides.
    Overrides set to None are ignored.

    Parameters
    ----------
    path : Path | str | None
        Settings file. ``settings.yaml`` in the working directory is used
        when it exists and no path is given.
    env : Mapping[str, str] | None
        Environment variables, defaults to ``os.environ``
    **overrides : Any
        Explicit field values (e.g. from CLI options)

    Returns
    -------
    ScanSettings
        Validated settings

    Raises
    ------
    ConfigurationError
        If the file cannot be read or the settings are invalid

    """
    env = os.environ if env is None else env
    values: dict[str, Any] = {}

    settings_path = Path(path) if path else Path(DEFAULT_SETTINGS_FILE)
    if settings_path.exists():
        try:
            with open(settings_path, encoding="utf-8") as f:
                file_values = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            msg = f"Could not read settings file {settings_path}: {e}"
            raise ConfigurationError(msg) from e
        if not isinstance(file_values, dict):
            msg = f"Settings file {settings_path} must contain a mapping"
            raise ConfigurationError(msg)
        values.update(file_values)
    elif path:
        msg = f"Settings file not found: {settings_path}"
        raise ConfigurationError(msg)

    for env_name, field in ENV_OVERRIDES.items():
        if env.get(env_name):
            values[field] = env[env_name]

    values.update({key: value for key, value in overrides.items() if value is not None})

    if not values.get("etherscan_api_key"):
        msg = "etherscan key is not set: add etherscan_api_key to settings.yaml or export ETHERSCAN_API_KEY"
        raise ConfigurationError(msg)

    try:
        return ScanSettings(**values)
    except ValidationError as e:
        msg = f"Invalid settings: {e}"
        raise ConfigurationError(msg) from e
