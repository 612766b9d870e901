"""Authenticated caller identity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class Identity:
    """Who is calling. Master may touch any command; a server only its own."""

    kind: Literal["master", "server"]
    server_name: str | None = None
    network: str | None = None

    @property
    def is_master(self) -> bool:
        return self.kind == "master"

    def may_access(self, server_id: str) -> bool:
        """Whether this identity may resolve commands addressed to server_id."""
        return self.is_master or self.server_name == server_id
