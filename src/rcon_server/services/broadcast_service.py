"""Broadcast coordination: fan one request out to a whole network."""

from __future__ import annotations

from datetime import datetime

import structlog

from rcon_server.dao.command_dao import CommandDAO
from rcon_server.models.command import Command, CommandStatus, ExecutionType
from rcon_server.services.registry_service import RegistryService
from rcon_server.utils.cache import PendingCache
from rcon_server.utils.crypto import Crypto

logger = structlog.get_logger(__name__)


class BroadcastService:
    """Creates sibling commands for every server in a network.

    The first sibling to be reported EXECUTED wins; every other sibling
    still active at that moment is cancelled in the same unit of work.
    That favours at-most-once over guaranteed delivery, which is what
    player-targeted actions such as teleports or rewards need.
    """

    def __init__(
        self,
        command_dao: CommandDAO,
        registry: RegistryService,
        pending_cache: PendingCache,
    ) -> None:
        self._dao = command_dao
        self._registry = registry
        self._cache = pending_cache

    def siblings_for(
        self,
        *,
        server_id: str,
        command: str,
        player: str,
        game_mode: str | None,
        created_at: datetime,
        expires_at: datetime,
    ) -> tuple[str, list[Command]]:
        """Build, but do not insert, one sibling per network member.

        Raises:
            ValueError: If the originating server has no network.
        """
        network = self._registry.network_for_server(server_id)
        if network is None:
            raise ValueError(f"Unknown server: {server_id}")
        members = self._registry.servers_in_network(network)
        group_id = Crypto.new_id()
        siblings = [
            Command(
                id=Crypto.new_id(),
                server_id=member,
                game_mode=game_mode,
                command=command,
                player=player,
                execution_type=ExecutionType.BROADCAST_ONLINE.value,
                status=CommandStatus.PENDING.value,
                created_at=created_at,
                expires_at=expires_at,
                group_id=group_id,
            )
            for member in members
        ]
        return group_id, siblings

    async def create_broadcast(
        self,
        *,
        server_id: str,
        command: str,
        player: str,
        game_mode: str | None,
        created_at: datetime,
        expires_at: datetime,
    ) -> tuple[str, list[Command]]:
        """Insert every sibling atomically, then drop the whole pending cache.

        Returns:
            The shared group id and the created siblings, oldest first.
        """
        group_id, siblings = self.siblings_for(
            server_id=server_id,
            command=command,
            player=player,
            game_mode=game_mode,
            created_at=created_at,
            expires_at=expires_at,
        )
        async with self._dao.transaction():
            await self._dao.insert_many(siblings)
            await self._dao.commit()
        # A broadcast touches an arbitrary subset of servers.
        self._cache.clear()
        logger.info(
            "broadcast_created",
            group_id=group_id,
            origin=server_id,
            servers=[s.server_id for s in siblings],
            player=player,
        )
        return group_id, siblings

    async def on_executed(self, command: Command) -> list[str]:
        """Stand down the rest of the group after ``command`` won.

        Must run inside the caller's unit of work, right after the
        EXECUTED transition succeeded, so both writes commit together.

        Returns:
            Server ids of every sibling, for cache invalidation.
        """
        if command.group_id is None:
            return []
        cancelled = await self._dao.cancel_group_except(command.group_id, command.id)
        siblings = await self._dao.list_by_group(command.group_id)
        if cancelled:
            logger.info(
                "broadcast_group_resolved",
                group_id=command.group_id,
                winner=command.id,
                winner_server=command.server_id,
                cancelled=cancelled,
            )
        return [s.server_id for s in siblings]

    async def list_group(self, group_id: str) -> list[Command]:
        """Every sibling of a group, oldest first."""
        async with self._dao.transaction():
            return await self._dao.list_by_group(group_id)
