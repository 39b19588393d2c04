"""
Reaction Collector — a narrow per-message channel for confirmation
reactions.

A session subscribes for one message id, one author and one marker emoji.
The Gateway feeds every REACTION_ADDED event into ``feed``; only reactions
matching all three reach the subscription's queue, so unrelated reactions
neither confirm nor reset the window.  ``wait`` is a timed get on that
queue and raises CollectionTimeout when the window closes.
"""

from __future__ import annotations

import asyncio
import logging

from shardline.gateway.errors import CollectionTimeout
from shardline.gateway.events import Emoji, ReactionAdded

logger = logging.getLogger("gateway.collector")


class Subscription:
    """One open collection window.  Use as a context manager."""

    def __init__(
        self,
        collector: ReactionCollector,
        message_id: int,
        author_id: int,
        marker: Emoji,
    ) -> None:
        self._collector = collector
        self.message_id = message_id
        self.author_id = author_id
        self.marker = marker
        self._queue: asyncio.Queue[ReactionAdded] = asyncio.Queue(maxsize=1)

    def matches(self, reaction: ReactionAdded) -> bool:
        return (
            reaction.message_id == self.message_id
            and reaction.user_id == self.author_id
            and reaction.emoji == self.marker
        )

    def offer(self, reaction: ReactionAdded) -> bool:
        if not self.matches(reaction):
            return False
        try:
            self._queue.put_nowait(reaction)
        except asyncio.QueueFull:
            # Already confirmed; further matches are irrelevant.
            return False
        return True

    async def wait(self, timeout: float) -> ReactionAdded:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            raise CollectionTimeout(
                f"no confirmation on message {self.message_id} within {timeout}s"
            ) from None

    def close(self) -> None:
        self._collector._unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ReactionCollector:
    """Routes reactions to the open subscription for their message."""

    def __init__(self) -> None:
        self._subscriptions: dict[int, Subscription] = {}

    def subscribe(self, message_id: int, author_id: int, marker: Emoji) -> Subscription:
        if message_id in self._subscriptions:
            raise ValueError(f"message {message_id} already has an open collector")
        sub = Subscription(self, message_id, author_id, marker)
        self._subscriptions[message_id] = sub
        return sub

    def feed(self, reaction: ReactionAdded) -> bool:
        """Deliver a reaction.  Returns True if a window accepted it."""
        sub = self._subscriptions.get(reaction.message_id)
        if sub is None:
            return False
        accepted = sub.offer(reaction)
        if not accepted:
            logger.debug(
                "Ignoring reaction %s by %d on %d",
                reaction.emoji, reaction.user_id, reaction.message_id,
            )
        return accepted

    def is_open(self, message_id: int) -> bool:
        return message_id in self._subscriptions

    @property
    def open_count(self) -> int:
        return len(self._subscriptions)

    def _unsubscribe(self, sub: Subscription) -> None:
        if self._subscriptions.get(sub.message_id) is sub:
            del self._subscriptions[sub.message_id]
