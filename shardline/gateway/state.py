"""
Shared State Store — process-wide configuration and small shared maps.

Holds string scalars such as ``BOT_ID``, ``JOIN_LOG``, ``LOGO_EMOJI_ID``
and ``BOT_AVATAR``.  Everything runs on one event loop, so lookups are
plain dict reads and never wait; writes are serialised behind an
asyncio.Lock so a multi-key update is never observed half-applied.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

logger = logging.getLogger("gateway.state")


class SharedStateStore:
    """Concurrency-safe string key/value store, created once at startup."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    # ── Reads ──

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key, default)

    def get_int(self, key: str) -> int | None:
        """Parse a numeric identifier, or None if absent / not a number."""
        raw = self._values.get(key)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("State key %s is not numeric: %r", key, raw)
            return None

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def snapshot(self) -> dict[str, str]:
        return dict(self._values)

    # ── Writes ──

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._values[key] = value

    async def update(self, values: dict[str, str]) -> None:
        async with self._lock:
            self._values.update(values)

    async def delete(self, keys: Iterable[str]) -> None:
        async with self._lock:
            for key in keys:
                self._values.pop(key, None)
