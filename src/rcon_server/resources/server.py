"""Server resource — read access to the network registry."""

from __future__ import annotations

from typing import Any

from rcon_server.models.identity import Identity
from rcon_server.services.registry_service import RegistryService


class ServerNotFoundError(Exception):
    """Raised when the requested server is not registered."""


class ServerResource:
    """Network and server listings. Tokens are never exposed."""

    def __init__(self, *, registry: RegistryService) -> None:
        self._registry = registry

    def list_networks(self) -> dict[str, Any]:
        """All networks and their member servers."""
        return {
            "success": True,
            "networks": [
                {"network": n.name, "servers": list(n.servers)}
                for n in self._registry.networks()
            ],
        }

    def own_network(self, identity: Identity) -> dict[str, Any]:
        """The calling server's network members."""
        assert identity.network is not None
        return {
            "success": True,
            "network": identity.network,
            "currentServer": identity.server_name,
            "servers": self._registry.servers_in_network(identity.network),
        }

    def status(self, server_name: str) -> dict[str, Any]:
        """Registry entry for one server.

        Raises:
            ServerNotFoundError: If the server is not registered.
        """
        if not self._registry.is_valid_server(server_name):
            raise ServerNotFoundError(f"Unknown server: {server_name}")
        return {
            "success": True,
            "server": {
                "name": server_name,
                "network": self._registry.network_for_server(server_name),
            },
        }

    def reload(self) -> dict[str, Any]:
        """Re-read the servers file.

        Raises:
            ValueError: If the new file is invalid; the old map stays active.
        """
        networks = self._registry.reload()
        return {
            "success": True,
            "message": "Server configuration reloaded",
            "networks": [
                {"network": n.name, "serverCount": len(n.servers)}
                for n in networks.values()
            ],
        }
