"""Shared fixtures for rcon_server tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest
import yaml

from rcon_server.app import create_app
from rcon_server.config import Settings
from rcon_server.dao.command_dao import CommandDAO
from rcon_server.services.broadcast_service import BroadcastService
from rcon_server.services.command_service import CommandService
from rcon_server.services.registry_service import RegistryService
from rcon_server.utils.cache import PendingCache
from rcon_server.utils.db import Database

MASTER_TOKEN = "test-master-token"
DEFAULT_TOKEN = "default-network-token"
CREATIVE_TOKEN = "creative-network-token"

NETWORKS: dict[str, dict[str, Any]] = {
    "default": {
        "token": DEFAULT_TOKEN,
        "servers": ["lobby", "skyblock-1", "survival-1"],
    },
    "creative": {
        "token": CREATIVE_TOKEN,
        "servers": ["creative-1"],
    },
}

MASTER_HEADERS = {"Authorization": f"Bearer {MASTER_TOKEN}"}


def server_headers(server_name: str, token: str = DEFAULT_TOKEN) -> dict[str, str]:
    """Agent headers: network token plus the calling server's name."""
    return {"Authorization": f"Bearer {token}", "X-Server-Name": server_name}


class FakeClock:
    """Settable UTC clock for services that take a ``clock`` callable."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def servers_file(tmp_path: Path) -> Path:
    """A servers.yaml with two networks."""
    path = tmp_path / "servers.yaml"
    path.write_text(yaml.safe_dump({"networks": NETWORKS}))
    return path


@pytest.fixture()
def settings(servers_file: Path) -> Settings:
    """Test settings with in-memory SQLite and no background sweeper."""
    return Settings(
        master_token=MASTER_TOKEN,
        database_url="sqlite+aiosqlite://",
        servers_file=str(servers_file),
        sweeper_enabled=False,
        log_level="WARNING",
    )


@pytest.fixture()
async def client(settings: Settings) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client wired to the test app with its tables created."""
    app = create_app(settings)
    await Database.create_tables()
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    await Database.close()


@pytest.fixture()
async def command_dao() -> AsyncIterator[CommandDAO]:
    """DAO over a fresh in-memory database."""
    pool = Database.init("sqlite+aiosqlite://")
    await Database.create_tables()
    yield CommandDAO(pool)
    await Database.close()


@pytest.fixture()
def registry() -> RegistryService:
    return RegistryService(networks=NETWORKS)


@pytest.fixture()
def pending_cache() -> PendingCache:
    return PendingCache(ttl_seconds=60)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def command_service(
    command_dao: CommandDAO,
    registry: RegistryService,
    pending_cache: PendingCache,
    clock: FakeClock,
) -> CommandService:
    """Fully wired service with a controllable clock."""
    broadcast = BroadcastService(command_dao, registry, pending_cache)
    return CommandService(
        command_dao,
        registry,
        pending_cache,
        broadcast,
        expiry_hours=24,
        bulk_max=5,
        clock=clock,
    )
