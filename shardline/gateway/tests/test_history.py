"""
Tests for the Message History Cache.

Covers:
  - put / get / remove
  - mutate on present and absent ids
  - LRU eviction under the size cap
  - concurrent writers
"""

import asyncio

import pytest

from shardline.gateway.errors import CacheMiss
from shardline.gateway.history import MessageHistoryCache, MessageSnapshot


def _snap(message_id: int, content: str = "reply") -> MessageSnapshot:
    return MessageSnapshot(message_id=message_id, channel_id=5, author_id=1, content=content)


class TestBasicOperations:

    @pytest.mark.asyncio
    async def test_put_then_get(self):
        cache = MessageHistoryCache()
        await cache.put(1, _snap(101))
        assert cache.get(1).message_id == 101
        assert 1 in cache
        assert len(cache) == 1

    def test_get_missing(self):
        assert MessageHistoryCache().get(123) is None

    def test_require_missing_raises(self):
        with pytest.raises(CacheMiss):
            MessageHistoryCache().require(123)

    @pytest.mark.asyncio
    async def test_remove(self):
        cache = MessageHistoryCache()
        await cache.put(1, _snap(101))
        assert await cache.remove(1) is True
        assert cache.get(1) is None
        assert await cache.remove(1) is False

    @pytest.mark.asyncio
    async def test_put_overwrites(self):
        cache = MessageHistoryCache()
        await cache.put(1, _snap(101, "old"))
        await cache.put(1, _snap(102, "new"))
        assert cache.get(1).content == "new"
        assert len(cache) == 1

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            MessageHistoryCache(max_entries=0)


class TestMutate:

    @pytest.mark.asyncio
    async def test_mutate_reflects_new_content(self):
        cache = MessageHistoryCache()
        await cache.put(1, _snap(101, "before"))
        ok = await cache.mutate(1, lambda s: s.model_copy(update={"content": "after"}))
        assert ok is True
        assert cache.get(1).content == "after"
        assert cache.get(1).message_id == 101

    @pytest.mark.asyncio
    async def test_mutate_missing_is_noop(self):
        cache = MessageHistoryCache()
        called = []
        ok = await cache.mutate(9, lambda s: called.append(s) or s)
        assert ok is False
        assert called == []
        assert len(cache) == 0


class TestEviction:

    @pytest.mark.asyncio
    async def test_oldest_evicted(self):
        cache = MessageHistoryCache(max_entries=3)
        for i in range(4):
            await cache.put(i, _snap(100 + i))
        assert cache.get(0) is None
        assert [i for i in range(4) if i in cache] == [1, 2, 3]
        assert cache.stats()["evictions"] == 1

    @pytest.mark.asyncio
    async def test_recent_lookup_protects_entry(self):
        cache = MessageHistoryCache(max_entries=2)
        await cache.put(1, _snap(101))
        await cache.put(2, _snap(102))
        cache.get(1)
        await cache.put(3, _snap(103))
        assert 1 in cache
        assert 2 not in cache


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_puts_respect_cap(self):
        cache = MessageHistoryCache(max_entries=10)
        await asyncio.gather(*(cache.put(i, _snap(i)) for i in range(100)))
        assert len(cache) == 10

    @pytest.mark.asyncio
    async def test_concurrent_mutates_all_apply(self):
        cache = MessageHistoryCache()
        await cache.put(1, _snap(101, ""))

        def append(suffix):
            return lambda s: s.model_copy(update={"content": s.content + suffix})

        await asyncio.gather(*(cache.mutate(1, append("x")) for _ in range(20)))
        assert cache.get(1).content == "x" * 20
