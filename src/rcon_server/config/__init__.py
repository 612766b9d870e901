"""Settings and their YAML/env loader."""

from rcon_server.config.loader import ConfigLoader
from rcon_server.config.settings import ENV_PREFIX, Settings

__all__ = ["ENV_PREFIX", "ConfigLoader", "Settings"]
