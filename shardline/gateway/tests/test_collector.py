"""
Tests for the Reaction Collector.
"""

import asyncio

import pytest

from shardline.gateway.collector import ReactionCollector
from shardline.gateway.errors import CollectionTimeout
from shardline.gateway.events import Emoji, ReactionAdded

MARKER = Emoji(name="💻")


def _reaction(message_id=1, user_id=42, emoji=MARKER):
    return ReactionAdded(message_id=message_id, channel_id=5, user_id=user_id, emoji=emoji)


class TestFiltering:

    @pytest.mark.asyncio
    async def test_matching_reaction_delivered(self):
        collector = ReactionCollector()
        with collector.subscribe(1, 42, MARKER) as sub:
            assert collector.feed(_reaction()) is True
            got = await sub.wait(0.1)
        assert got.user_id == 42

    @pytest.mark.parametrize("reaction", [
        _reaction(user_id=7),
        _reaction(emoji=Emoji(name="👍")),
        _reaction(emoji=Emoji(name="💻", id=99)),
        _reaction(message_id=2),
    ])
    def test_non_matching_rejected(self, reaction):
        collector = ReactionCollector()
        collector.subscribe(1, 42, MARKER)
        assert collector.feed(reaction) is False

    def test_custom_emoji_matches_by_id_and_name(self):
        custom = Emoji(name="logo", id=55)
        collector = ReactionCollector()
        collector.subscribe(1, 42, custom)
        assert collector.feed(_reaction(emoji=Emoji(name="logo", id=55))) is True


class TestWindow:

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        collector = ReactionCollector()
        with collector.subscribe(1, 42, MARKER) as sub:
            with pytest.raises(CollectionTimeout):
                await sub.wait(0.05)
        assert not collector.is_open(1)

    @pytest.mark.asyncio
    async def test_other_reactions_do_not_end_window(self):
        collector = ReactionCollector()
        with collector.subscribe(1, 42, MARKER) as sub:
            async def noise_then_match():
                await asyncio.sleep(0.02)
                collector.feed(_reaction(user_id=7))
                await asyncio.sleep(0.02)
                collector.feed(_reaction())

            task = asyncio.create_task(noise_then_match())
            got = await sub.wait(0.5)
            await task
        assert got.user_id == 42

    def test_double_subscribe_rejected(self):
        collector = ReactionCollector()
        collector.subscribe(1, 42, MARKER)
        with pytest.raises(ValueError):
            collector.subscribe(1, 43, MARKER)

    def test_close_unregisters(self):
        collector = ReactionCollector()
        sub = collector.subscribe(1, 42, MARKER)
        assert collector.open_count == 1
        sub.close()
        assert collector.open_count == 0
        assert collector.feed(_reaction()) is False
