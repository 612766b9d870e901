"""ConfigLoader — per-environment YAML layered under RCON_* env vars."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from rcon_server.config.settings import ENV_PREFIX, Settings

_BUNDLED_CONFIG = Path(__file__).resolve().parent
_DEFAULT_ENV = "dev"


class ConfigLoader:
    """Resolve Settings from YAML files with environment variable overrides.

    ``RCON_ENV`` picks the environment (``dev`` when unset) and
    ``RCON_CONFIG_DIR`` points at a directory laid out like the bundled
    one (``<dir>/<env>/settings.yaml``) for deployments that keep their
    config outside the package.
    """

    @staticmethod
    def environment() -> str:
        return os.environ.get(f"{ENV_PREFIX}ENV", _DEFAULT_ENV)

    @staticmethod
    def config_dir() -> Path:
        override = os.environ.get(f"{ENV_PREFIX}CONFIG_DIR")
        return Path(override) if override else _BUNDLED_CONFIG

    @staticmethod
    def _read_yaml(path: Path) -> dict[str, Any]:
        """Top-level mapping of a settings file; empty if absent.

        Raises:
            ValueError: If the file exists but is not a mapping.
        """
        if not path.exists():
            return {}
        with path.open() as config_file:
            data = yaml.safe_load(config_file)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping of setting names")
        return data

    @staticmethod
    def load_settings(**overrides: Any) -> Settings:
        """Priority: overrides > RCON_* env vars > YAML > field defaults."""
        path = ConfigLoader.config_dir() / ConfigLoader.environment() / "settings.yaml"
        from_file = {
            key: value
            for key, value in ConfigLoader._read_yaml(path).items()
            # Init kwargs outrank env vars in pydantic-settings.
            if f"{ENV_PREFIX}{key.upper()}" not in os.environ
        }
        return Settings(**{**from_file, **overrides})
