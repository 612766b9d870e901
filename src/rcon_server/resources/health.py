"""Health resource — liveness plus a database round trip."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

Ping = Callable[[], Awaitable[bool]]


class HealthResource:
    """Reports ``ok`` while the command store answers, ``degraded`` otherwise."""

    def __init__(self, *, ping: Ping) -> None:
        self._ping = ping
        self._started = time.monotonic()

    async def check(self) -> dict[str, str | float]:
        """Current health, database status and process uptime in seconds."""
        database_ok = await self._ping()
        return {
            "status": "ok" if database_ok else "degraded",
            "database": "ok" if database_ok else "unreachable",
            "uptime": round(time.monotonic() - self._started, 3),
        }
