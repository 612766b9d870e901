"""Network registry — which servers exist and which network owns them."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

DEFAULT_NETWORKS: dict[str, dict[str, Any]] = {
    "default": {
        "token": "CHANGE_ME_default_network_token",
        "servers": ["lobby", "skyblock-1", "survival-1"],
    },
}


@dataclass(frozen=True)
class Network:
    """A named group of servers sharing one agent token."""

    name: str
    token: str
    servers: tuple[str, ...] = field(default_factory=tuple)


class RegistryService:
    """Read-only view of the configured networks, reloadable at runtime.

    Loaded from a YAML file shaped like::

        networks:
          default:
            token: secret
            servers: [lobby, skyblock-1]

    When the file does not exist the built-in default network is used.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        networks: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._inline = networks
        self._networks: dict[str, Network] = {}
        self._lookup: dict[str, Network] = {}
        self.reload()

    def _read(self) -> dict[str, dict[str, Any]]:
        if self._inline is not None:
            return self._inline
        if self._path is None or not self._path.exists():
            logger.warning(
                "servers_file_missing",
                path=str(self._path),
                fallback="default network",
            )
            return DEFAULT_NETWORKS
        with self._path.open() as servers_file:
            data = yaml.safe_load(servers_file) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self._path}: expected a mapping at top level")
        networks = data.get("networks") or {}
        if not isinstance(networks, dict):
            raise ValueError(f"{self._path}: 'networks' must be a mapping")
        return networks

    def reload(self) -> dict[str, Network]:
        """Re-read the registry source. Returns the new network map.

        Raises:
            ValueError: If the file is malformed or a server is listed
                under two networks.
        """
        networks: dict[str, Network] = {}
        lookup: dict[str, Network] = {}
        for name, raw in self._read().items():
            raw = raw or {}
            if not isinstance(raw, dict):
                raise ValueError(f"Network {name!r} must be a mapping")
            listed = raw.get("servers") or []
            if not isinstance(listed, list):
                raise ValueError(f"Network {name!r}: 'servers' must be a list")
            servers = tuple(str(s) for s in listed)
            network = Network(
                name=str(name), token=str(raw.get("token") or ""), servers=servers,
            )
            for server in servers:
                if server in lookup:
                    raise ValueError(
                        f"Server {server!r} is listed in both "
                        f"{lookup[server].name!r} and {network.name!r}",
                    )
                lookup[server] = network
            networks[network.name] = network
        self._networks = networks
        self._lookup = lookup
        logger.info(
            "registry_loaded",
            networks=len(networks),
            servers=len(lookup),
        )
        return dict(networks)

    def is_valid_server(self, server_name: str) -> bool:
        return server_name in self._lookup

    def network_for_server(self, server_name: str) -> str | None:
        network = self._lookup.get(server_name)
        return network.name if network is not None else None

    def token_for_server(self, server_name: str) -> str | None:
        network = self._lookup.get(server_name)
        return network.token if network is not None else None

    def servers_in_network(self, network_name: str) -> list[str]:
        """Member servers of a network, in configured order."""
        network = self._networks.get(network_name)
        return list(network.servers) if network is not None else []

    def networks(self) -> list[Network]:
        return list(self._networks.values())

    def server_names(self) -> list[str]:
        return list(self._lookup)
