"""Command resource — protocol-agnostic queue operations for the HTTP layer."""

from __future__ import annotations

from typing import Any

from rcon_server.dao.command_dao import CommandFilters
from rcon_server.models.identity import Identity
from rcon_server.services.command_service import (
    CommandForbiddenError,
    CommandNotFoundError,
    CommandService,
    CommandValidationError,
    UnknownServerError,
)

__all__ = [
    "CommandForbiddenError",
    "CommandNotFoundError",
    "CommandResource",
    "CommandValidationError",
    "UnknownServerError",
]


class CommandResource:
    """Queue operations shaped as response payloads.

    Built once at startup with all dependencies pre-wired. Identity checks
    that depend on the command row happen in the service; which identity
    kind may call which operation is decided by the controller.
    """

    def __init__(self, *, command_service: CommandService) -> None:
        self._service = command_service

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a single command or a broadcast group.

        Raises:
            CommandValidationError: On invalid fields.
            UnknownServerError: If serverId is not registered.
        """
        result = await self._service.create_command(data)
        return {"success": True, **result}

    async def create_bulk(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create many commands; invalid items are reported, not fatal.

        Raises:
            CommandValidationError: If ``commands`` is empty, not a list,
                or over the batch limit.
        """
        result = await self._service.create_bulk(data.get("commands"))
        return {"success": True, **result}

    async def pending(self, identity: Identity) -> dict[str, Any]:
        """Pending commands for the calling server."""
        assert identity.server_name is not None
        commands, cached = await self._service.poll_pending(identity.server_name)
        body: dict[str, Any] = {"success": True, "commands": commands}
        if cached:
            body["cached"] = True
        return body

    async def complete(
        self, identity: Identity, command_id: str, data: dict[str, Any],
    ) -> dict[str, Any]:
        """Report successful execution.

        Raises:
            CommandNotFoundError: If the command does not exist.
            CommandForbiddenError: If a server reports another server's command.
        """
        result = await self._service.complete(
            identity, command_id, _text(data.get("response")),
        )
        return {"success": True, **result}

    async def fail(
        self, identity: Identity, command_id: str, data: dict[str, Any],
    ) -> dict[str, Any]:
        """Report a failed execution. Accepts ``error`` or ``response``."""
        response = _text(data.get("error")) or _text(data.get("response"))
        result = await self._service.fail(identity, command_id, response)
        return {"success": True, **result}

    async def skip(
        self, identity: Identity, command_id: str, data: dict[str, Any],
    ) -> dict[str, Any]:
        """Report that the command does not apply to this server."""
        result = await self._service.skip(
            identity, command_id, _text(data.get("response")),
        )
        return {"success": True, **result}

    async def cancel(self, identity: Identity, command_id: str) -> dict[str, Any]:
        """Cancel a command that has not been resolved yet."""
        result = await self._service.cancel(identity, command_id)
        return {"success": True, **result}

    async def get(self, command_id: str) -> dict[str, Any]:
        """Fetch one command.

        Raises:
            CommandNotFoundError: If the command does not exist.
        """
        command = await self._service.get_command(command_id)
        return {"success": True, "command": command}

    async def list_commands(
        self,
        *,
        server_id: str | None,
        game_mode: str | None,
        player: str | None,
        status: str | None,
        limit: int | None,
        offset: int | None,
    ) -> dict[str, Any]:
        """Filtered, paginated listing."""
        filters = CommandFilters(
            server_id=server_id or None,
            game_mode=game_mode or None,
            player=player or None,
            status=status or None,
        )
        result = await self._service.list_commands(
            filters, limit=limit, offset=offset,
        )
        return {"success": True, **result}

    async def group(self, group_id: str) -> dict[str, Any]:
        """Every sibling of a broadcast group."""
        commands = await self._service.list_group(group_id)
        return {"success": True, "groupId": group_id, "commands": commands}


def _text(value: object) -> str | None:
    """Coerce a free-text body field to str, treating empty as absent."""
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)
