"""
Message History Cache — maps an invoking message id to the bot reply that
answered it, so later edit/delete notifications for the invoking message
can be reconciled against the reply.

Bounded LRU: once ``max_entries`` is reached, the least recently used
entry is evicted on insert.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel, Field

from shardline.gateway.errors import CacheMiss

logger = logging.getLogger("gateway.history")

DEFAULT_MAX_ENTRIES = 1000


class MessageSnapshot(BaseModel):
    """Last-known state of a tracked bot reply."""

    message_id: int
    channel_id: int
    author_id: int
    content: str = ""
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


SnapshotTransform = Callable[[MessageSnapshot], MessageSnapshot]


class MessageHistoryCache:
    """
    LRU map of message id → MessageSnapshot.

    ``get`` is a plain read and never waits.  ``put``, ``remove`` and
    ``mutate`` are serialised behind one asyncio.Lock.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self._entries: OrderedDict[int, MessageSnapshot] = OrderedDict()
        self._lock = asyncio.Lock()
        self._evictions = 0

    def get(self, message_id: int) -> MessageSnapshot | None:
        snapshot = self._entries.get(message_id)
        if snapshot is not None:
            self._entries.move_to_end(message_id)
        return snapshot

    def require(self, message_id: int) -> MessageSnapshot:
        """Like ``get``, but raises CacheMiss when the id is not tracked."""
        snapshot = self.get(message_id)
        if snapshot is None:
            raise CacheMiss(message_id)
        return snapshot

    def __contains__(self, message_id: int) -> bool:
        return message_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def put(self, message_id: int, snapshot: MessageSnapshot) -> None:
        async with self._lock:
            if message_id in self._entries:
                self._entries.move_to_end(message_id)
            self._entries[message_id] = snapshot
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Evicted message %d from history cache", evicted)

    async def remove(self, message_id: int) -> bool:
        async with self._lock:
            return self._entries.pop(message_id, None) is not None

    async def mutate(self, message_id: int, fn: SnapshotTransform) -> bool:
        """
        Replace the cached snapshot with ``fn(snapshot)``.

        Returns False when the id is not cached; there is nothing to
        reconcile in that case.
        """
        async with self._lock:
            current = self._entries.get(message_id)
            if current is None:
                return False
            self._entries[message_id] = fn(current)
            self._entries.move_to_end(message_id)
            return True

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "evictions": self._evictions,
        }
