"""Settings model — pydantic-settings with env var support."""

from __future__ import annotations

from pydantic_settings import BaseSettings

ENV_PREFIX = "RCON_"


class Settings(BaseSettings):
    """Server settings.

    Use ``ConfigLoader.load_settings()`` to build with YAML + env var layering.
    Direct construction (e.g. in tests) skips YAML loading.
    """

    master_token: str = "change-me-to-a-secure-random-token"
    database_url: str = "sqlite+aiosqlite:///rcon.db"
    servers_file: str = "servers.yaml"
    command_expiry_hours: float = 24
    max_expiry_hours: float = 8760
    cleanup_interval_minutes: float = 5
    sweeper_enabled: bool = True
    pending_cache_ttl_ms: int = 1000
    pending_cache_max_entries: int = 200
    bulk_max_commands: int = 500
    list_max_limit: int = 200
    request_timeout_seconds: float = 15
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": ENV_PREFIX}
