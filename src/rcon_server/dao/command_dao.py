"""Data access for the Command model."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

from sqlalchemy import CursorResult, Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rcon_server.models.command import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Command,
    CommandStatus,
)

_active_conn: ContextVar[AsyncSession] = ContextVar("_command_dao_conn")

_ACTIVE = [s.value for s in ACTIVE_STATUSES]
_TERMINAL = [s.value for s in TERMINAL_STATUSES]

GROUP_CANCEL_RESPONSE = "Auto-cancelled: executed on another server"


@dataclass(frozen=True)
class CommandFilters:
    """Optional equality filters for observability listings."""

    server_id: str | None = None
    game_mode: str | None = None
    player: str | None = None
    status: str | None = None


class CommandDAO:
    """Data access for queued commands.

    Use transaction() to wrap a group of operations in one unit of work.
    Every status change is a predicate-guarded UPDATE that only matches
    rows still in an active status, so racing writers resolve to a single
    winner inside the database rather than in process memory.
    """

    def __init__(self, pool: async_sessionmaker[AsyncSession]) -> None:
        self._pool = pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Open a unit of work. All DAO calls inside share one connection.

        Anything not committed when the block exits is rolled back.
        """
        async with self._pool() as connection:
            context_token = _active_conn.set(connection)
            try:
                yield
            finally:
                _active_conn.reset(context_token)

    def _conn(self) -> AsyncSession:
        """Return the current unit-of-work connection."""
        return _active_conn.get()

    # --- inserts ---

    async def insert_one(self, command: Command) -> Command:
        """Stage a single command and flush it."""
        self._conn().add(command)
        await self._conn().flush()
        return command

    async def insert_many(self, commands: Sequence[Command]) -> list[Command]:
        """Stage a batch of commands in the current unit of work.

        Nothing is visible to other connections until commit(); if the
        flush or the commit fails the whole batch is rolled back.
        """
        self._conn().add_all(commands)
        await self._conn().flush()
        return list(commands)

    # --- reads ---

    async def find_by_id(self, command_id: str) -> Command | None:
        """Find a command by its ID."""
        result = await self._conn().execute(
            select(Command).where(Command.id == command_id)
            .execution_options(populate_existing=True),
        )
        return result.scalar_one_or_none()

    async def list_pending_by_server(self, server_id: str) -> list[Command]:
        """Return all active commands for a server, oldest first."""
        result = await self._conn().execute(
            select(Command)
            .where(
                Command.server_id == server_id,
                Command.status.in_(_ACTIVE),
            )
            .order_by(Command.created_at, Command.id)
            .execution_options(populate_existing=True),
        )
        return list(result.scalars().all())

    async def list_by_group(self, group_id: str) -> list[Command]:
        """Return every sibling of a broadcast group, oldest first."""
        result = await self._conn().execute(
            select(Command)
            .where(Command.group_id == group_id)
            .order_by(Command.created_at, Command.id)
            .execution_options(populate_existing=True),
        )
        return list(result.scalars().all())

    @staticmethod
    def _apply_filters(
        stmt: Select[Any], filters: CommandFilters,
    ) -> Select[Any]:
        if filters.server_id:
            stmt = stmt.where(Command.server_id == filters.server_id)
        if filters.game_mode:
            stmt = stmt.where(Command.game_mode == filters.game_mode)
        if filters.player:
            stmt = stmt.where(Command.player == filters.player)
        if filters.status:
            stmt = stmt.where(Command.status == filters.status)
        return stmt

    async def list_commands(
        self,
        filters: CommandFilters,
        *,
        limit: int,
        offset: int = 0,
    ) -> list[Command]:
        """List commands matching the filters, newest first."""
        stmt = self._apply_filters(select(Command), filters)
        stmt = (
            stmt.order_by(Command.created_at.desc(), Command.id)
            .limit(limit)
            .offset(offset)
        )
        result = await self._conn().execute(stmt)
        return list(result.scalars().all())

    async def count_commands(self, filters: CommandFilters) -> int:
        """Count commands matching the filters."""
        stmt = self._apply_filters(
            select(func.count()).select_from(Command), filters,
        )
        result = await self._conn().execute(stmt)
        return int(result.scalar_one())

    # --- conditional writes ---

    async def transition(
        self,
        command_id: str,
        target: CommandStatus,
        *,
        now: datetime,
        response: str | None = None,
    ) -> bool:
        """Move one active command to a terminal status.

        Returns False when the command is missing or already terminal;
        that is the losing side of a race, not an error.
        """
        if not target.is_terminal:
            raise ValueError(f"{target.value} is not a terminal status")
        values: dict[str, Any] = {"status": target.value}
        if target in (
            CommandStatus.EXECUTED, CommandStatus.FAILED, CommandStatus.SKIPPED,
        ):
            values["executed_at"] = now
            values["response"] = response
        elif response is not None:
            values["response"] = response
        result = await self._conn().execute(
            update(Command)
            .where(Command.id == command_id, Command.status.in_(_ACTIVE))
            .values(**values)
            .execution_options(synchronize_session=False),
        )
        return cast(CursorResult[Any], result).rowcount == 1

    async def cancel_group_except(self, group_id: str, except_id: str) -> int:
        """Cancel every still-active sibling of a group except one. Returns count."""
        result = await self._conn().execute(
            update(Command)
            .where(
                Command.group_id == group_id,
                Command.id != except_id,
                Command.status.in_(_ACTIVE),
            )
            .values(
                status=CommandStatus.CANCELLED.value,
                response=GROUP_CANCEL_RESPONSE,
            )
            .execution_options(synchronize_session=False),
        )
        return cast(CursorResult[Any], result).rowcount

    async def expire_overdue(self, now: datetime) -> int:
        """Mark every active command whose expires_at has passed. Returns count."""
        result = await self._conn().execute(
            update(Command)
            .where(
                Command.status.in_(_ACTIVE),
                Command.expires_at < now,
            )
            .values(status=CommandStatus.EXPIRED.value)
            .execution_options(synchronize_session=False),
        )
        return cast(CursorResult[Any], result).rowcount

    async def purge_before(self, cutoff: datetime) -> int:
        """Delete terminal commands created before cutoff. Returns count."""
        result = await self._conn().execute(
            delete(Command)
            .where(
                Command.status.in_(_TERMINAL),
                Command.created_at < cutoff,
            )
            .execution_options(synchronize_session=False),
        )
        return cast(CursorResult[Any], result).rowcount

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self._conn().commit()

    async def rollback(self) -> None:
        """Roll back the current transaction."""
        await self._conn().rollback()
