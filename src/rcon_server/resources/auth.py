"""Auth resource — token checks yielding a master or server Identity."""

from __future__ import annotations

from rcon_server.models.identity import Identity
from rcon_server.services.registry_service import RegistryService
from rcon_server.utils.crypto import Crypto


class MissingTokenError(Exception):
    """Raised when no credential was presented."""


class InvalidTokenError(Exception):
    """Raised when the credential does not match."""


class MissingServerNameError(Exception):
    """Raised when a server credential is presented without a server name."""


class UnknownServerAuthError(Exception):
    """Raised when the named server is not in the registry."""


class AuthResource:
    """Resolves presented tokens to an Identity.

    The master token grants operator access to every command. Each
    network has its own token, valid for any server in that network.
    """

    def __init__(self, *, master_token: str, registry: RegistryService) -> None:
        self._master_token = master_token
        self._registry = registry

    def master(self, token: str | None) -> Identity:
        """Require the master token.

        Raises:
            MissingTokenError: If no token was given.
            InvalidTokenError: If it is not the master token.
        """
        if not token:
            raise MissingTokenError("Missing authentication token")
        if not Crypto.safe_equal(token, self._master_token):
            raise InvalidTokenError("Invalid master token")
        return Identity(kind="master")

    def server(self, token: str | None, server_name: str | None) -> Identity:
        """Require a network token valid for ``server_name``.

        Raises:
            MissingTokenError: If no token was given.
            MissingServerNameError: If no server name was given.
            UnknownServerAuthError: If the server is not registered.
            InvalidTokenError: If the token is not the server's network token.
        """
        if not token:
            raise MissingTokenError("Missing authentication token")
        if not server_name:
            raise MissingServerNameError("Missing server name")
        if not self._registry.is_valid_server(server_name):
            raise UnknownServerAuthError(f"Unknown server: {server_name}")
        if not Crypto.safe_equal(token, self._registry.token_for_server(server_name)):
            raise InvalidTokenError("Invalid network token")
        return Identity(
            kind="server",
            server_name=server_name,
            network=self._registry.network_for_server(server_name),
        )

    def combined(self, token: str | None, server_name: str | None) -> Identity:
        """Accept the master token, or a server token for ``server_name``.

        Raises:
            MissingTokenError: If no token was given.
            InvalidTokenError: If neither credential matches.
        """
        if not token:
            raise MissingTokenError("Missing authentication token")
        if Crypto.safe_equal(token, self._master_token):
            return Identity(kind="master")
        if server_name and self._registry.is_valid_server(server_name):
            expected = self._registry.token_for_server(server_name)
            if Crypto.safe_equal(token, expected):
                return Identity(
                    kind="server",
                    server_name=server_name,
                    network=self._registry.network_for_server(server_name),
                )
        raise InvalidTokenError("Invalid token")
