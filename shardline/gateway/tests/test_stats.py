"""
Tests for StatsManager counters and the DBL publisher's error mapping.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from shardline.gateway.errors import PublishError
from shardline.gateway.stats import DblStatsPublisher, StatsManager


class _FakeResponse:
    def __init__(self, status, body=""):
        self.status = status
        self._body = body

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class _FakeSession:
    def __init__(self, response):
        self._response = response
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self._response

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class TestCounters:

    @pytest.mark.asyncio
    async def test_boot_join_leave(self):
        stats = StatsManager()
        await stats.set_boot_counts(22, 3)
        assert await stats.new_server() == 23
        assert await stats.leave_server() == 22
        assert stats.shard_count() == 3

    @pytest.mark.asyncio
    async def test_leave_never_negative(self):
        stats = StatsManager()
        assert await stats.leave_server() == 0

    def test_tracking_needs_link_and_key(self):
        assert StatsManager().should_track() is False
        assert StatsManager("https://stats", "").should_track() is False
        assert StatsManager("https://stats", "k").should_track() is True

    @pytest.mark.asyncio
    async def test_tracked_join_posts(self):
        stats = StatsManager("https://stats", "k")
        with patch.object(stats, "_post", new=AsyncMock()) as post:
            await stats.new_server()
        post.assert_awaited_once_with("/insert/servers", {"count": 1, "delta": 1})

    @pytest.mark.asyncio
    async def test_post_failure_is_logged_only(self):
        stats = StatsManager("https://stats", "k")
        boom = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with patch("shardline.gateway.stats.aiohttp.ClientSession", boom):
            await stats.post_request()


class TestDblPublisher:

    @pytest.mark.asyncio
    async def test_posts_counts(self):
        session = _FakeSession(_FakeResponse(200))
        publisher = DblStatsPublisher(123, "token", "https://dbl.local/api/")
        with patch("shardline.gateway.stats.aiohttp.ClientSession", return_value=session):
            await publisher.publish(22, 3)

        url, kwargs = session.calls[0]
        assert url == "https://dbl.local/api/bots/123/stats"
        assert kwargs["json"] == {"server_count": 22, "shard_count": 3}
        assert kwargs["headers"] == {"Authorization": "token"}

    @pytest.mark.asyncio
    async def test_http_error_becomes_publish_error(self):
        session = _FakeSession(_FakeResponse(401, "unauthorized"))
        publisher = DblStatsPublisher(123, "bad")
        with patch("shardline.gateway.stats.aiohttp.ClientSession", return_value=session):
            with pytest.raises(PublishError, match="401"):
                await publisher.publish(1, 1)

    @pytest.mark.asyncio
    async def test_connection_error_becomes_publish_error(self):
        publisher = DblStatsPublisher(123, "token")
        boom = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with patch("shardline.gateway.stats.aiohttp.ClientSession", boom):
            with pytest.raises(PublishError):
                await publisher.publish(1, 1)
