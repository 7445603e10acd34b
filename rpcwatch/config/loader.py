"""Layered TOML configuration for rpcwatch.

Up to two files are read from the config directory, lowest priority first:

    config/default.toml
    config/{RPCWATCH_ENV}.toml

Both are optional so an application embedding rpcwatch without a config
directory runs on the model defaults. Tables are merged key by key, so an
environment file that only sets ``[observability.logging] level`` keeps the
other logging keys and every other table from ``default.toml``.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

CONFIG_DIR_ENV = "RPCWATCH_CONFIG_DIR"
ENVIRONMENT_ENV = "RPCWATCH_ENV"
DEFAULT_ENVIRONMENT = "development"


def config_layers(config_dir: Path | None = None, environment: str | None = None) -> list[Path]:
    """Return the config files that exist, lowest priority first.

    Args:
        config_dir: Directory to read (default: RPCWATCH_CONFIG_DIR or ./config)
        environment: Environment name (default: RPCWATCH_ENV or "development")

    Raises:
        FileNotFoundError: If RPCWATCH_CONFIG_DIR names a missing directory
    """
    if config_dir is None:
        explicit = os.environ.get(CONFIG_DIR_ENV)
        if explicit and not Path(explicit).is_dir():
            raise FileNotFoundError(f"{CONFIG_DIR_ENV} points to a missing directory: {explicit}")
        config_dir = Path(explicit or "config")

    environment = environment or os.environ.get(ENVIRONMENT_ENV, DEFAULT_ENVIRONMENT)
    names = dict.fromkeys(["default.toml", f"{environment}.toml"])
    return [config_dir / name for name in names if (config_dir / name).is_file()]


def load_config(config_dir: Path | None = None, environment: str | None = None) -> dict[str, Any]:
    """Read and merge the config layers into one mapping.

    Raises:
        tomllib.TOMLDecodeError: If a layer is not valid TOML
    """
    config: dict[str, Any] = {}
    for path in config_layers(config_dir, environment):
        with path.open("rb") as f:
            config = _merge_tables(config, tomllib.load(f))
    return config


def _merge_tables(base: dict[str, Any], layer: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in layer.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge_tables(current, value)
        else:
            merged[key] = value
    return merged
