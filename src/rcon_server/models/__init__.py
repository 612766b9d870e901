"""Command queue models.

Importing this package registers every table with Base.metadata,
which Database.create_tables() relies on.
"""

from rcon_server.models.command import Command, CommandStatus, ExecutionType
from rcon_server.models.identity import Identity

__all__ = ["Command", "CommandStatus", "ExecutionType", "Identity"]
