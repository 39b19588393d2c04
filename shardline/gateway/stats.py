"""
Stats — usage metrics and external group-count publication.

Two separate concerns live here:

  - StatsManager keeps the live group / shard counts and, when tracking
    is enabled (a stats API link and key are configured), pushes
    request, command and join/leave metrics to the stats API.
  - StatsPublisher pushes the aggregate group count to a bot-listing
    endpoint.  Publication is best-effort: failures become PublishError,
    which callers log and drop.

Both talk HTTP through aiohttp and never retry.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from shardline.gateway.errors import PublishError

logger = logging.getLogger("gateway.stats")

HTTP_TIMEOUT_SECONDS = 10


class StatsPublisher(ABC):
    """External statistics endpoint."""

    @abstractmethod
    async def publish(self, group_count: int, shard_count: int) -> None:
        """Publish aggregate counts.  Raises PublishError on failure."""


class DblStatsPublisher(StatsPublisher):
    """Posts cumulative counts to a top.gg-compatible bot list API."""

    def __init__(self, bot_id: int, token: str, api_url: str = "https://top.gg/api") -> None:
        self._bot_id = bot_id
        self._token = token
        self._api_url = api_url.rstrip("/")

    async def publish(self, group_count: int, shard_count: int) -> None:
        url = f"{self._api_url}/bots/{self._bot_id}/stats"
        payload = {"server_count": group_count, "shard_count": shard_count}
        headers = {"Authorization": self._token}
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS),
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise PublishError(f"{response.status}: {body[:200]}")
        except aiohttp.ClientError as exc:
            raise PublishError(str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise PublishError("timed out") from exc
        logger.debug("Published %d groups over %d shards", group_count, shard_count)


class StatsManager:
    """
    Live group/shard counters plus the metrics feed.

    Counter updates are serialised behind an asyncio.Lock.  Metric posts
    happen after the lock is released.
    """

    def __init__(self, api_link: str = "", api_key: str = "") -> None:
        self._api_link = api_link.rstrip("/")
        self._api_key = api_key
        self._server_count = 0
        self._shard_count = 0
        self._lock = asyncio.Lock()

    def should_track(self) -> bool:
        return bool(self._api_link and self._api_key)

    def server_count(self) -> int:
        return self._server_count

    def shard_count(self) -> int:
        return self._shard_count

    async def set_boot_counts(self, server_count: int, shard_count: int) -> None:
        """Seed the counters once every shard has reported ready."""
        async with self._lock:
            self._server_count = server_count
            self._shard_count = shard_count
        if self.should_track():
            await self._post("/insert/servers", {"count": server_count})

    async def new_server(self) -> int:
        async with self._lock:
            self._server_count += 1
            count = self._server_count
        if self.should_track():
            await self._post("/insert/servers", {"count": count, "delta": 1})
        return count

    async def leave_server(self) -> int:
        async with self._lock:
            self._server_count = max(0, self._server_count - 1)
            count = self._server_count
        if self.should_track():
            await self._post("/insert/servers", {"count": count, "delta": -1})
        return count

    async def post_request(self) -> None:
        await self._post("/insert/request", {"value": 1})

    async def command_executed(self, command: str, group_id: int) -> None:
        await self._post("/insert/command", {"command": command, "guild": str(group_id)})

    async def _post(self, path: str, payload: dict[str, Any]) -> None:
        """Fire one metric at the stats API.  Failures are logged only."""
        if not self.should_track():
            return
        url = f"{self._api_link}{path}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    json=payload,
                    headers={"Authorization": self._api_key},
                    timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS),
                ) as response:
                    if response.status >= 400:
                        logger.warning("Stats API %s returned %d", path, response.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Stats API %s failed: %s", path, exc)
