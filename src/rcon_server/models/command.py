"""Command queue model and its status/execution enums."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rcon_server.utils.db import Base


class CommandStatus(str, Enum):
    """Lifecycle states. PENDING and QUEUED are the only non-terminal ones."""

    PENDING = "PENDING"
    # Reserved: never written by the engine, treated exactly like PENDING.
    QUEUED = "QUEUED"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    SKIPPED = "SKIPPED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        """True when no further transition is defined out of this status."""
        return self not in ACTIVE_STATUSES


class ExecutionType(str, Enum):
    """How the agent should run a command. Fixed at creation."""

    INSTANT = "INSTANT"
    REQUIRE_ONLINE = "REQUIRE_ONLINE"
    BROADCAST_ONLINE = "BROADCAST_ONLINE"

    @property
    def requires_player(self) -> bool:
        """True when the command targets a specific online player."""
        return self is not ExecutionType.INSTANT


ACTIVE_STATUSES: tuple[CommandStatus, ...] = (
    CommandStatus.PENDING,
    CommandStatus.QUEUED,
)
TERMINAL_STATUSES: tuple[CommandStatus, ...] = tuple(
    s for s in CommandStatus if s not in ACTIVE_STATUSES
)


class Command(Base):
    """Command queued for a game server. Polled, then resolved by its agent."""

    __tablename__ = "commands"
    __table_args__ = (
        Index("idx_commands_server_status", "server_id", "status"),
        Index("idx_commands_player_status", "player", "status"),
        Index("idx_commands_expires", "expires_at"),
        Index("idx_commands_created", "created_at"),
        Index("idx_commands_group", "group_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    server_id: Mapped[str] = mapped_column(String(255))
    game_mode: Mapped[str | None] = mapped_column(String(255), nullable=True)
    command: Mapped[str] = mapped_column(Text)
    player: Mapped[str | None] = mapped_column(String(255), nullable=True)
    execution_type: Mapped[str] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(
        String(50), default=CommandStatus.PENDING.value
    )
    response: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    group_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
