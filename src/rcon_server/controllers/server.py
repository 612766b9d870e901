"""Server controller — registry lookups for operators and agents."""

from __future__ import annotations

from typing import Any

from litestar import Controller, get, post
from litestar.di import Provide
from litestar.exceptions import HTTPException, NotFoundException
from litestar.types import Dependencies

from rcon_server.controllers.identity import provide_master, provide_server
from rcon_server.models.identity import Identity
from rcon_server.resources.server import ServerNotFoundError, ServerResource


class ServerController(Controller):
    """HTTP adapter for the network registry."""

    path = "/api/servers"
    dependencies: Dependencies = {  # noqa: RUF012
        "identity": Provide(provide_master, sync_to_thread=False),
    }

    @get("/")
    async def list_networks(
        self, identity: Identity, server_resource: ServerResource,
    ) -> dict[str, Any]:
        """Operator lists every network and its servers."""
        return server_resource.list_networks()

    @get(
        "/network/{server_name:str}",
        dependencies={"identity": Provide(provide_server, sync_to_thread=False)},
    )
    async def own_network(
        self,
        server_name: str,
        identity: Identity,
        server_resource: ServerResource,
    ) -> dict[str, Any]:
        """Agent discovers the other servers in its network."""
        return server_resource.own_network(identity)

    @get("/{server_name:str}/status")
    async def status(
        self,
        server_name: str,
        identity: Identity,
        server_resource: ServerResource,
    ) -> dict[str, Any]:
        """Operator checks that a server is registered."""
        try:
            return server_resource.status(server_name)
        except ServerNotFoundError as error:
            raise NotFoundException(detail=str(error)) from error

    @post("/reload", status_code=200)
    async def reload(
        self, identity: Identity, server_resource: ServerResource,
    ) -> dict[str, Any]:
        """Operator re-reads the servers file."""
        try:
            return server_resource.reload()
        except ValueError as error:
            raise HTTPException(
                status_code=400, detail=f"Invalid servers file: {error}",
            ) from error
