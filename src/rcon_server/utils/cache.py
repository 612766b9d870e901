"""Short-lived, bounded cache of per-server pending command lists."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import Any

PendingEntry = tuple[Mapping[str, Any], ...]


class PendingCache:
    """Per-server snapshot of pending commands with TTL and LRU eviction.

    The TTL is only a safety net. Every status mutation must call
    ``invalidate()`` (or ``clear()`` when the affected servers are not
    known) before the mutation is acknowledged.

    Entries are read-only views over private copies, so neither the
    writer nor any reader can change what later polls see.

    The clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 1.0,
        max_entries: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, PendingEntry]] = OrderedDict()

    def get(self, server_id: str) -> PendingEntry | None:
        """Return the cached list, or None if absent or past its TTL."""
        entry = self._entries.get(server_id)
        if entry is None:
            return None
        stored_at, commands = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[server_id]
            return None
        self._entries.move_to_end(server_id)
        return commands

    def set(self, server_id: str, commands: Sequence[dict[str, Any]]) -> PendingEntry:
        """Store a snapshot, evicting the least recently used entry when full."""
        snapshot: PendingEntry = tuple(MappingProxyType(dict(c)) for c in commands)
        if server_id in self._entries:
            self._entries.move_to_end(server_id)
        elif len(self._entries) >= self._max_entries:
            self._entries.popitem(last=False)
        self._entries[server_id] = (self._clock(), snapshot)
        return snapshot

    def invalidate(self, server_id: str) -> None:
        """Drop one server's entry."""
        self._entries.pop(server_id, None)

    def invalidate_many(self, server_ids: Sequence[str]) -> None:
        for server_id in server_ids:
            self._entries.pop(server_id, None)

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._entries
