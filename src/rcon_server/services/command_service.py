"""Business logic for the command queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from rcon_server.dao.command_dao import CommandDAO, CommandFilters
from rcon_server.models.command import Command, CommandStatus, ExecutionType
from rcon_server.models.identity import Identity
from rcon_server.services.broadcast_service import BroadcastService
from rcon_server.services.registry_service import RegistryService
from rcon_server.utils.cache import PendingCache
from rcon_server.utils.crypto import Crypto
from rcon_server.utils.time import Clock, Time

logger = structlog.get_logger(__name__)

SKIP_DEFAULT_RESPONSE = "Player not online on this server"
FAIL_DEFAULT_RESPONSE = "Unknown error"

_RESOLVE_MESSAGES = {
    CommandStatus.EXECUTED: "Command marked as executed",
    CommandStatus.FAILED: "Command marked as failed",
    CommandStatus.SKIPPED: "Command skipped",
    CommandStatus.CANCELLED: "Command cancelled",
}


class CommandValidationError(Exception):
    """Raised when a create request is missing or has invalid fields."""


class UnknownServerError(Exception):
    """Raised when a request names a server the registry does not know."""


class CommandNotFoundError(Exception):
    """Raised when the requested command does not exist."""


class CommandForbiddenError(Exception):
    """Raised when a server identity touches another server's command."""


@dataclass(frozen=True)
class NewCommand:
    """A validated create request, ready to be turned into rows."""

    server_id: str
    command: str
    execution_type: ExecutionType
    player: str | None
    game_mode: str | None
    expiry_hours: float | None


class CommandService:
    """Built once at startup with its DAO, registry and cache pre-wired.

    Each method wraps its DAO calls in a transaction, one unit of work
    per service call. Cache invalidation always happens after commit and
    before the method returns.
    """

    def __init__(
        self,
        command_dao: CommandDAO,
        registry: RegistryService,
        pending_cache: PendingCache,
        broadcast: BroadcastService,
        *,
        expiry_hours: float = 24,
        max_expiry_hours: float = 8760,
        bulk_max: int = 500,
        list_max_limit: int = 200,
        clock: Clock = Time.utcnow,
    ) -> None:
        self._dao = command_dao
        self._registry = registry
        self._cache = pending_cache
        self._broadcast = broadcast
        self._expiry_hours = expiry_hours
        self._max_expiry_hours = max_expiry_hours
        self._bulk_max = bulk_max
        self._list_max_limit = list_max_limit
        self._clock = clock

    # --- validation ---

    def validate(self, data: dict[str, Any]) -> NewCommand:
        """Check one create request without touching storage.

        Raises:
            CommandValidationError: On missing or malformed fields.
            UnknownServerError: If serverId is not registered.
        """
        server_id = data.get("serverId")
        command = data.get("command")
        raw_type = data.get("executionType")
        if not server_id or not command or not raw_type:
            raise CommandValidationError(
                "Missing required fields: serverId, command, executionType",
            )
        if not isinstance(server_id, str) or not isinstance(command, str):
            raise CommandValidationError("serverId and command must be strings")
        try:
            execution_type = ExecutionType(raw_type)
        except ValueError as error:
            valid = ", ".join(t.value for t in ExecutionType)
            raise CommandValidationError(
                f"Invalid executionType. Must be one of: {valid}",
            ) from error
        if not self._registry.is_valid_server(server_id):
            raise UnknownServerError(f"Unknown server: {server_id}")

        player = data.get("player") or None
        if player is not None and not isinstance(player, str):
            raise CommandValidationError("player must be a string")
        if execution_type.requires_player and not player:
            raise CommandValidationError(
                f"Player is required for {execution_type.value} execution type",
            )
        game_mode = data.get("gameMode") or None
        if game_mode is not None and not isinstance(game_mode, str):
            raise CommandValidationError("gameMode must be a string")

        expiry_hours = data.get("expiryHours")
        if expiry_hours is not None:
            if isinstance(expiry_hours, bool) or not isinstance(
                expiry_hours, (int, float),
            ):
                raise CommandValidationError("expiryHours must be a number")
            if expiry_hours < 0:
                raise CommandValidationError("expiryHours must not be negative")
            # Also rejects NaN, which fails every comparison.
            if not expiry_hours <= self._max_expiry_hours:
                raise CommandValidationError("expiryHours is out of range")

        return NewCommand(
            server_id=server_id,
            command=command,
            execution_type=execution_type,
            player=player,
            game_mode=game_mode,
            expiry_hours=expiry_hours,
        )

    def _expires_at(self, now: datetime, expiry_hours: float | None) -> datetime:
        hours = self._expiry_hours if expiry_hours is None else expiry_hours
        return now + timedelta(hours=hours)

    def _build_row(self, new: NewCommand, now: datetime) -> Command:
        return Command(
            id=Crypto.new_id(),
            server_id=new.server_id,
            game_mode=new.game_mode,
            command=new.command,
            player=new.player,
            execution_type=new.execution_type.value,
            status=CommandStatus.PENDING.value,
            created_at=now,
            expires_at=self._expires_at(now, new.expiry_hours),
        )

    # --- creation ---

    async def create_command(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create one command, or a broadcast group for BROADCAST_ONLINE.

        Returns:
            ``{"command": ...}`` for a single command, or
            ``{"groupId": ..., "commands": [...]}`` for a broadcast.
        """
        new = self.validate(data)
        now = self._clock()
        if new.execution_type is ExecutionType.BROADCAST_ONLINE:
            assert new.player is not None
            group_id, siblings = await self._broadcast.create_broadcast(
                server_id=new.server_id,
                command=new.command,
                player=new.player,
                game_mode=new.game_mode,
                created_at=now,
                expires_at=self._expires_at(now, new.expiry_hours),
            )
            return {
                "groupId": group_id,
                "commands": [self.command_to_dict(c) for c in siblings],
            }

        row = self._build_row(new, now)
        async with self._dao.transaction():
            await self._dao.insert_one(row)
            await self._dao.commit()
        self._cache.invalidate(row.server_id)
        logger.info(
            "command_created",
            command_id=row.id,
            server_id=row.server_id,
            execution_type=row.execution_type,
        )
        return {"command": self.command_to_dict(row)}

    async def create_bulk(self, items: Any) -> dict[str, Any]:
        """Insert every valid item in one atomic batch.

        Invalid items are reported by index and skipped; they never abort
        the valid ones. BROADCAST_ONLINE items are stored as plain rows.

        Raises:
            CommandValidationError: If ``items`` is not a non-empty list
                within the batch limit.
        """
        if not isinstance(items, list) or not items:
            raise CommandValidationError("commands must be a non-empty array")
        if len(items) > self._bulk_max:
            raise CommandValidationError(
                f"Maximum {self._bulk_max} commands per bulk request",
            )

        now = self._clock()
        rows: list[Command] = []
        errors: list[dict[str, Any]] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                errors.append({"index": index, "error": "Item must be an object"})
                continue
            try:
                rows.append(self._build_row(self.validate(item), now))
            except (CommandValidationError, UnknownServerError) as error:
                errors.append({"index": index, "error": str(error)})

        if rows:
            async with self._dao.transaction():
                await self._dao.insert_many(rows)
                await self._dao.commit()
            self._cache.invalidate_many([r.server_id for r in rows])
            logger.info("commands_bulk_created", created=len(rows), rejected=len(errors))

        result: dict[str, Any] = {"created": len(rows)}
        if errors:
            result["errors"] = errors
        return result

    # --- polling ---

    async def poll_pending(self, server_id: str) -> tuple[list[dict[str, Any]], bool]:
        """Active commands for a server, oldest first, read through the cache.

        Returns:
            (commands, served_from_cache)
        """
        cached = self._cache.get(server_id)
        if cached is not None:
            return [dict(c) for c in cached], True
        async with self._dao.transaction():
            commands = await self._dao.list_pending_by_server(server_id)
        snapshot = self._cache.set(
            server_id, [self.command_to_dict(c) for c in commands],
        )
        return [dict(c) for c in snapshot], False

    # --- resolution ---

    async def _load_for(self, identity: Identity, command_id: str) -> Command:
        async with self._dao.transaction():
            command = await self._dao.find_by_id(command_id)
        if command is None:
            raise CommandNotFoundError("Command not found")
        if not identity.may_access(command.server_id):
            raise CommandForbiddenError("Not authorized for this command")
        return command

    async def _resolve(
        self,
        identity: Identity,
        command_id: str,
        target: CommandStatus,
        response: str | None,
    ) -> dict[str, Any]:
        """Apply one terminal transition; a lost race reports changed=False.

        The lookup runs in its own short read so the write transaction
        starts with the guarded UPDATE.
        """
        command = await self._load_for(identity, command_id)
        affected = [command.server_id]
        async with self._dao.transaction():
            changed = await self._dao.transition(
                command_id, target, now=self._clock(), response=response,
            )
            if changed and target is CommandStatus.EXECUTED and command.group_id:
                affected += await self._broadcast.on_executed(command)
            await self._dao.commit()
        self._cache.invalidate_many(affected)

        if changed:
            logger.info(
                "command_resolved",
                command_id=command_id,
                server_id=command.server_id,
                status=target.value,
            )
            message = _RESOLVE_MESSAGES[target]
        else:
            logger.info(
                "command_already_resolved",
                command_id=command_id,
                attempted=target.value,
            )
            message = "Command already resolved"
        return {"changed": changed, "message": message}

    async def complete(
        self, identity: Identity, command_id: str, response: str | None = None,
    ) -> dict[str, Any]:
        """Mark a command EXECUTED; cancels the rest of its broadcast group."""
        return await self._resolve(
            identity, command_id, CommandStatus.EXECUTED, response,
        )

    async def fail(
        self, identity: Identity, command_id: str, response: str | None = None,
    ) -> dict[str, Any]:
        """Mark a command FAILED."""
        return await self._resolve(
            identity, command_id, CommandStatus.FAILED,
            response or FAIL_DEFAULT_RESPONSE,
        )

    async def skip(
        self, identity: Identity, command_id: str, response: str | None = None,
    ) -> dict[str, Any]:
        """Mark a command SKIPPED, e.g. when the player is not online there."""
        return await self._resolve(
            identity, command_id, CommandStatus.SKIPPED,
            response or SKIP_DEFAULT_RESPONSE,
        )

    async def cancel(self, identity: Identity, command_id: str) -> dict[str, Any]:
        """Cancel a command. Operator-only at the resource layer."""
        return await self._resolve(
            identity, command_id, CommandStatus.CANCELLED, None,
        )

    # --- observability ---

    async def get_command(self, command_id: str) -> dict[str, Any]:
        """Get a single command by ID.

        Raises:
            CommandNotFoundError: If the command does not exist.
        """
        async with self._dao.transaction():
            command = await self._dao.find_by_id(command_id)
        if command is None:
            raise CommandNotFoundError("Command not found")
        return self.command_to_dict(command)

    async def list_commands(
        self,
        filters: CommandFilters,
        *,
        limit: int | None = None,
        offset: int | None = None,
    ) -> dict[str, Any]:
        """Filtered, paginated listing with the unpaginated total."""
        if filters.status is not None:
            try:
                CommandStatus(filters.status)
            except ValueError as error:
                raise CommandValidationError(
                    f"Unknown status: {filters.status}",
                ) from error
        page_size = min(limit if limit and limit > 0 else 50, self._list_max_limit)
        start = max(offset or 0, 0)
        async with self._dao.transaction():
            commands = await self._dao.list_commands(
                filters, limit=page_size, offset=start,
            )
            total = await self._dao.count_commands(filters)
        return {
            "commands": [self.command_to_dict(c) for c in commands],
            "total": total,
            "limit": page_size,
            "offset": start,
        }

    async def list_group(self, group_id: str) -> list[dict[str, Any]]:
        """Every sibling of a broadcast group.

        Raises:
            CommandNotFoundError: If no command carries this group id.
        """
        siblings = await self._broadcast.list_group(group_id)
        if not siblings:
            raise CommandNotFoundError("Group not found")
        return [self.command_to_dict(c) for c in siblings]

    @staticmethod
    def command_to_dict(cmd: Command) -> dict[str, Any]:
        """Serialize a command in the row format agents parse."""
        return {
            "id": cmd.id,
            "server_id": cmd.server_id,
            "game_mode": cmd.game_mode,
            "command": cmd.command,
            "player": cmd.player,
            "execution_type": cmd.execution_type,
            "status": cmd.status,
            "response": cmd.response,
            "created_at": Time.isoformat(cmd.created_at),
            "executed_at": Time.isoformat(cmd.executed_at),
            "expires_at": Time.isoformat(cmd.expires_at),
            "group_id": cmd.group_id,
        }
