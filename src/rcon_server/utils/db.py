"""Async database engine and session pool for the command store."""

from __future__ import annotations

from typing import Any, ClassVar

import structlog
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)

_IN_MEMORY_SQLITE = "sqlite+aiosqlite://"

# Applied to every new file-backed SQLite connection.
_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def _apply_sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for pragma in _SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


class Database:
    """Class-level engine shared by every DAO and the health check.

    Database.init() runs once in the app factory (or the ``sweep`` CLI);
    the returned pool is handed to CommandDAO. File-backed SQLite gets a
    30 second lock wait and WAL so pollers do not block resolvers.
    """

    _engine: ClassVar[AsyncEngine | None] = None

    @staticmethod
    def init(database_url: str) -> async_sessionmaker[AsyncSession]:
        """Create the async engine and session pool. Returns the pool."""
        kwargs: dict[str, Any] = {"echo": False}
        file_sqlite = False
        if database_url == _IN_MEMORY_SQLITE:
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        elif database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"timeout": 30}
            file_sqlite = True
        engine = create_async_engine(database_url, **kwargs)
        if file_sqlite:
            event.listen(engine.sync_engine, "connect", _apply_sqlite_pragmas)
        Database._engine = engine
        logger.debug("database_initialized", url=engine.url.render_as_string())
        return async_sessionmaker(engine, expire_on_commit=False)

    @staticmethod
    async def create_tables() -> None:
        """Create the commands table and its indexes if missing."""
        import rcon_server.models

        _ = rcon_server.models  # registers Command with Base.metadata
        assert Database._engine is not None, "call Database.init() first"
        async with Database._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)

    @staticmethod
    async def ping() -> bool:
        """Run a trivial query. False when the store is unreachable."""
        if Database._engine is None:
            return False
        try:
            async with Database._engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
        except Exception as error:
            logger.warning("database_ping_failed", error=str(error))
            return False
        return True

    @staticmethod
    async def close() -> None:
        """Dispose the engine."""
        if Database._engine is not None:
            await Database._engine.dispose()
            Database._engine = None
