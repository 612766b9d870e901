"""Command controller — thin HTTP adapter for CommandResource."""

from __future__ import annotations

from typing import Any

from litestar import Controller, delete, get, post
from litestar.di import Provide
from litestar.exceptions import (
    HTTPException,
    NotFoundException,
    PermissionDeniedException,
)
from litestar.params import Parameter
from litestar.types import Dependencies

from rcon_server.controllers.identity import (
    provide_combined,
    provide_master,
    provide_server,
)
from rcon_server.models.identity import Identity
from rcon_server.resources.command import (
    CommandForbiddenError,
    CommandNotFoundError,
    CommandResource,
    CommandValidationError,
    UnknownServerError,
)

_SERVER = {"identity": Provide(provide_server, sync_to_thread=False)}
_COMBINED = {"identity": Provide(provide_combined, sync_to_thread=False)}


def _http_error(error: Exception) -> HTTPException:
    """Map a command domain error to its HTTP status."""
    if isinstance(error, CommandValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, CommandForbiddenError):
        return PermissionDeniedException(detail=str(error))
    return NotFoundException(detail=str(error))


_DOMAIN_ERRORS = (
    CommandValidationError,
    UnknownServerError,
    CommandNotFoundError,
    CommandForbiddenError,
)


class CommandController(Controller):
    """HTTP adapter for the command queue.

    Every route requires the master token unless it overrides
    ``identity`` with a server or combined provider.
    """

    path = "/api/commands"
    # Litestar declares dependencies as an instance var, so ClassVar
    # would fail mypy.  Suppress RUF012 (mutable class attribute).
    dependencies: Dependencies = {  # noqa: RUF012
        "identity": Provide(provide_master, sync_to_thread=False),
    }

    @post("/", status_code=201)
    async def create_command(
        self,
        data: dict[str, Any],
        identity: Identity,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        """Operator queues a command, or a broadcast for BROADCAST_ONLINE.

        Body: {"serverId", "command", "executionType", "player"?,
        "gameMode"?, "expiryHours"?}
        """
        try:
            return await command_resource.create(data)
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error

    @post("/bulk", status_code=201)
    async def create_bulk(
        self,
        data: dict[str, Any],
        identity: Identity,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        """Operator queues many commands. Body: {"commands": [...]}."""
        try:
            return await command_resource.create_bulk(data)
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error

    @get("/pending/{server_name:str}", dependencies=_SERVER)
    async def pending(
        self,
        server_name: str,
        identity: Identity,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        """Agent polls its pending commands, oldest first."""
        return await command_resource.pending(identity)

    @post("/{command_id:str}/complete", status_code=200, dependencies=_COMBINED)
    async def complete(
        self,
        command_id: str,
        identity: Identity,
        command_resource: CommandResource,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Agent reports success. Body: {"response"?}."""
        try:
            return await command_resource.complete(identity, command_id, data or {})
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error

    @post("/{command_id:str}/fail", status_code=200, dependencies=_COMBINED)
    async def fail(
        self,
        command_id: str,
        identity: Identity,
        command_resource: CommandResource,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Agent reports failure. Body: {"error"?, "response"?}."""
        try:
            return await command_resource.fail(identity, command_id, data or {})
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error

    @post("/{command_id:str}/skip", status_code=200, dependencies=_COMBINED)
    async def skip(
        self,
        command_id: str,
        identity: Identity,
        command_resource: CommandResource,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Agent reports the command does not apply to it. Body: {"response"?}."""
        try:
            return await command_resource.skip(identity, command_id, data or {})
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error

    @get("/group/{group_id:str}")
    async def group(
        self,
        group_id: str,
        identity: Identity,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        """Operator inspects every sibling of a broadcast."""
        try:
            return await command_resource.group(group_id)
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error

    @get("/{command_id:str}")
    async def get_command(
        self,
        command_id: str,
        identity: Identity,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        """Operator fetches one command."""
        try:
            return await command_resource.get(command_id)
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error

    @delete("/{command_id:str}", status_code=200)
    async def cancel(
        self,
        command_id: str,
        identity: Identity,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        """Operator cancels a command that has not been resolved."""
        try:
            return await command_resource.cancel(identity, command_id)
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error

    @get("/")
    async def list_commands(
        self,
        identity: Identity,
        command_resource: CommandResource,
        server_id: str | None = Parameter(query="serverId", default=None),
        game_mode: str | None = Parameter(query="gameMode", default=None),
        player: str | None = None,
        status: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> dict[str, Any]:
        """Operator lists commands. Query: serverId, gameMode, player,
        status, limit (max 200), offset."""
        try:
            return await command_resource.list_commands(
                server_id=server_id,
                game_mode=game_mode,
                player=player,
                status=status,
                limit=limit,
                offset=offset,
            )
        except _DOMAIN_ERRORS as error:
            raise _http_error(error) from error
