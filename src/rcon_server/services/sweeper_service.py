"""Lifecycle sweeper — expires overdue commands and purges old finished ones."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from rcon_server.dao.command_dao import CommandDAO
from rcon_server.utils.cache import PendingCache
from rcon_server.utils.time import Clock, Time

logger = structlog.get_logger(__name__)

_JOB_ID = "command-sweep"


@dataclass(frozen=True)
class SweepResult:
    """Row counts from one sweep. None means that step failed."""

    expired: int | None
    purged: int | None
    cutoff: datetime


class LifecycleSweeper:
    """Runs the expire and purge steps, once on demand or on an interval.

    ``run_once()`` is the unit under test; ``start()`` only schedules it.
    Neither step ever raises: failures are logged and retried next cycle.
    """

    def __init__(
        self,
        command_dao: CommandDAO,
        pending_cache: PendingCache,
        *,
        interval_minutes: float = 5,
        clock: Clock = Time.utcnow,
    ) -> None:
        self._dao = command_dao
        self._cache = pending_cache
        self._interval_minutes = interval_minutes
        self._clock = clock
        self._scheduler: AsyncIOScheduler | None = None

    async def expire(self, now: datetime) -> int | None:
        """Move every overdue active command to EXPIRED."""
        try:
            async with self._dao.transaction():
                expired = await self._dao.expire_overdue(now)
                await self._dao.commit()
        except Exception:
            logger.exception("expire_failed")
            return None
        if expired:
            self._cache.clear()
            logger.info("commands_expired", expired=expired)
        return expired

    async def purge(self, cutoff: datetime) -> int | None:
        """Delete finished commands created before the retention cutoff."""
        try:
            async with self._dao.transaction():
                purged = await self._dao.purge_before(cutoff)
                await self._dao.commit()
        except Exception:
            logger.exception("purge_failed", cutoff=cutoff.isoformat())
            return None
        if purged:
            logger.info("commands_purged", purged=purged, cutoff=cutoff.isoformat())
        return purged

    async def run_once(self, now: datetime | None = None) -> SweepResult:
        """One full cycle. The two steps are independent of each other."""
        now = now if now is not None else self._clock()
        cutoff = Time.previous_business_day(now)
        expired = await self.expire(now)
        purged = await self.purge(cutoff)
        return SweepResult(expired=expired, purged=purged, cutoff=cutoff)

    async def _tick(self) -> None:
        await self.run_once()

    def start(self) -> None:
        """Schedule run_once on the event loop, first run immediately."""
        if self._scheduler is not None and self._scheduler.running:
            return
        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,
            },
        )
        self._scheduler.add_job(
            self._tick,
            "interval",
            minutes=self._interval_minutes,
            id=_JOB_ID,
            next_run_time=Time.utcnow(),
        )
        self._scheduler.start()
        logger.info("sweeper_started", interval_minutes=self._interval_minutes)

    def shutdown(self) -> None:
        """Stop the schedule. In-flight runs are not awaited."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("sweeper_stopped")
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
