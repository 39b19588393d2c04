"""
Blocklist Guard — membership check for users and groups that may not run
commands.  Entries are bare 64-bit ids with no metadata.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

logger = logging.getLogger("gateway.blocklist")


class BlocklistGuard:
    """Read-mostly id set.  ``contains`` never waits; writes take the lock."""

    def __init__(self, entries: Iterable[int] = ()) -> None:
        self._entries: set[int] = set(entries)
        self._lock = asyncio.Lock()

    def contains(self, entry_id: int) -> bool:
        return entry_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[int]:
        return sorted(self._entries)

    async def insert(self, entry_id: int) -> bool:
        """Add an id.  Returns False if it was already blocked."""
        async with self._lock:
            if entry_id in self._entries:
                return False
            self._entries.add(entry_id)
        logger.info("Blocklisted %d", entry_id)
        return True

    async def remove(self, entry_id: int) -> bool:
        """Remove an id.  Returns False if it was not blocked."""
        async with self._lock:
            if entry_id not in self._entries:
                return False
            self._entries.discard(entry_id)
        logger.info("Removed %d from blocklist", entry_id)
        return True
