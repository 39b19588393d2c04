"""
Gateway — the event dispatcher and the core's public surface.

Every transport event enters through ``on_event`` and is routed by its
``event_type`` to exactly one handler:

  SHARD_READY      → readiness barrier; first full barrier runs the
                     all-shards-ready orchestration (exactly once)
  GROUP_JOINED     → join log, group count, stats, presence, welcome
  GROUP_LEFT       → leave log, group count, stats, presence
  MESSAGE_CREATED  → confirm-gated execution, as a background task
  MESSAGE_EDITED   → regenerate the tracked reply, if any
  MESSAGE_DELETED  → delete the tracked reply, if any
  REACTION_ADDED   → feed the reaction collector

Commands go through ``before_command`` / ``after_command``, which run the
middleware chain.  A failure in one handler is logged and never reaches
the caller feeding the stream.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from shardline.gateway.channels import MessagingPlatform
from shardline.gateway.collector import ReactionCollector
from shardline.gateway.confirm import ConfirmGatedRequestExecutor
from shardline.gateway.embeds import Renderer
from shardline.gateway.errors import (
    CacheMiss,
    DuplicateReport,
    PlatformError,
    PublishError,
)
from shardline.gateway.events import (
    ChatMessage,
    EventEnvelope,
    EventType,
    GroupDescriptor,
    GroupLeft,
    MessageDeleted,
    MessageEdited,
    ReactionAdded,
    ShardReady,
)
from shardline.gateway.history import MessageHistoryCache
from shardline.gateway.middleware import CommandMiddlewareChain, CommandOutcome
from shardline.gateway.readiness import AggregateSnapshot, ShardReadinessAggregator
from shardline.gateway.state import SharedStateStore
from shardline.gateway.stats import StatsManager, StatsPublisher

logger = logging.getLogger("gateway.core")

# Group joins older than this are replays from a reconnect, not new joins
JOIN_FRESHNESS_SECONDS = 30

EventHandler = Callable[[EventEnvelope], Awaitable[None]]


class Gateway:
    """Routes transport events to the component that owns them."""

    def __init__(
        self,
        *,
        platform: MessagingPlatform,
        state: SharedStateStore,
        history: MessageHistoryCache,
        readiness: ShardReadinessAggregator,
        collector: ReactionCollector,
        confirm: ConfirmGatedRequestExecutor,
        middleware: CommandMiddlewareChain,
        stats: StatsManager,
        publisher: StatsPublisher | None = None,
        renderer: Renderer | None = None,
    ) -> None:
        self._platform = platform
        self._state = state
        self._history = history
        self._readiness = readiness
        self._collector = collector
        self._confirm = confirm
        self._middleware = middleware
        self._stats = stats
        self._publisher = publisher
        self._renderer = renderer or Renderer()
        self._bg_tasks: set[asyncio.Task] = set()
        self._metrics: dict[str, Any] = {
            "events_processed": 0,
            "events_failed": 0,
            "events_by_type": {},
        }

        self._handlers: dict[EventType, EventHandler] = {
            EventType.SHARD_READY: self._on_shard_ready,
            EventType.GROUP_JOINED: self._on_group_joined,
            EventType.GROUP_LEFT: self._on_group_left,
            EventType.MESSAGE_CREATED: self._on_message_created,
            EventType.MESSAGE_EDITED: self._on_message_edited,
            EventType.MESSAGE_DELETED: self._on_message_deleted,
            EventType.REACTION_ADDED: self._on_reaction_added,
        }
        missing = set(EventType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for event types: {sorted(missing)}")

    # ── Main Entry Points ──

    async def on_event(self, event: EventEnvelope) -> None:
        """Process one transport event.  Never raises."""
        handler = self._handlers.get(event.event_type)
        if handler is None:
            logger.warning("Dropping event of unknown type %s", event.event_type)
            return

        by_type = self._metrics["events_by_type"]
        by_type[event.event_type.value] = by_type.get(event.event_type.value, 0) + 1
        try:
            await handler(event)
            self._metrics["events_processed"] += 1
        except Exception as exc:
            self._metrics["events_failed"] += 1
            logger.error(
                "Error handling %s (shard %d, event %s): %s",
                event.event_type.value, event.shard_id, event.event_id, exc,
                exc_info=True,
            )

    async def before_command(self, message: ChatMessage) -> bool:
        """Run the before-hooks.  False means: do not dispatch the command."""
        return await self._middleware.before(message)

    async def after_command(
        self, message: ChatMessage, command_name: str, outcome: CommandOutcome
    ) -> None:
        await self._middleware.after(message, command_name, outcome)

    async def drain(self) -> None:
        """Wait for every background task (confirmation sessions) to finish."""
        while self._bg_tasks:
            await asyncio.gather(*list(self._bg_tasks), return_exceptions=True)

    async def cancel_background(self) -> None:
        for task in list(self._bg_tasks):
            task.cancel()
        await asyncio.gather(*list(self._bg_tasks), return_exceptions=True)

    def status(self) -> dict[str, Any]:
        return {
            "readiness": self._readiness.snapshot(),
            "group_count": self._stats.server_count(),
            "cached_messages": len(self._history),
            "active_sessions": len(self._confirm.active_sessions),
            "open_collectors": self._collector.open_count,
            "metrics": {
                "events_processed": self._metrics["events_processed"],
                "events_failed": self._metrics["events_failed"],
                "events_by_type": dict(self._metrics["events_by_type"]),
            },
        }

    # ── Lifecycle events ──

    async def _on_shard_ready(self, event: EventEnvelope) -> None:
        ready: ShardReady = event.parsed()
        try:
            snapshot = await self._readiness.report_shard_ready(
                ready.shard_index, ready.group_count, ready.total_shards,
            )
        except DuplicateReport as exc:
            logger.info("Skipping duplicate ready event: %s", exc)
            return

        if snapshot.just_became_ready:
            await self._all_shards_ready(ready, snapshot)

    async def _all_shards_ready(self, ready: ShardReady, snapshot: AggregateSnapshot) -> None:
        if ready.bot_avatar_url:
            await self._state.set("BOT_AVATAR", ready.bot_avatar_url)

        await self._stats.set_boot_counts(
            snapshot.cumulative_groups, snapshot.expected_shard_total,
        )
        await self._publish_counts()
        await self._platform.update_presence_quietly(self._stats.server_count())
        logger.info("Ready in %d guilds", self._stats.server_count())

    async def _on_group_joined(self, event: EventEnvelope) -> None:
        group: GroupDescriptor = event.parsed()
        now = datetime.now(timezone.utc)
        joined_at = group.joined_at
        if joined_at.tzinfo is None:
            joined_at = joined_at.replace(tzinfo=timezone.utc)
        if joined_at + timedelta(seconds=JOIN_FRESHNESS_SECONDS) <= now:
            logger.debug("Ignoring replayed join for guild %d", group.id)
            return

        join_log = self._state.get_int("JOIN_LOG")
        if join_log is not None:
            await self._platform.send_quietly(join_log, self._renderer.join(group))

        await self._stats.new_server()
        if self._stats.server_count() > 0:
            await self._publish_counts()
            await self._platform.update_presence_quietly(self._stats.server_count())

        logger.info("Joining %s", group.name)
        await self._send_welcome(group)

    async def _send_welcome(self, group: GroupDescriptor) -> None:
        if group.system_channel_id is not None:
            await self._platform.send_quietly(group.system_channel_id, self._renderer.welcome())
            return
        for channel in group.channels:
            if "general" in channel.name:
                await self._platform.send_quietly(channel.id, self._renderer.welcome())

    async def _on_group_left(self, event: EventEnvelope) -> None:
        left: GroupLeft = event.parsed()

        join_log = self._state.get_int("JOIN_LOG")
        if join_log is not None:
            await self._platform.send_quietly(join_log, self._renderer.leave(left.group_id))

        await self._stats.leave_server()
        if self._stats.server_count() > 0:
            await self._publish_counts()
            await self._platform.update_presence_quietly(self._stats.server_count())

        logger.info("Leaving %d", left.group_id)

    async def _publish_counts(self) -> None:
        if self._publisher is None:
            return
        shard_count = self._readiness.expected_shard_total or self._stats.shard_count()
        try:
            await self._publisher.publish(self._stats.server_count(), shard_count)
        except PublishError as exc:
            logger.warning("Failed to post stats to dbl: %s", exc)

    # ── Content events ──

    async def _on_message_created(self, event: EventEnvelope) -> None:
        message: ChatMessage = event.parsed()
        if message.author.bot or not message.attachments:
            return
        # The collection window can last tens of seconds; keep the shard moving.
        self._spawn(self._confirm.handle_message(message), f"confirm-{message.id}")

    async def _on_message_edited(self, event: EventEnvelope) -> None:
        edited: MessageEdited = event.parsed()
        try:
            reply = self._history.require(edited.message_id)
        except CacheMiss:
            return
        if edited.content is None or edited.author is None:
            return

        regenerated = await self._confirm.rerender(edited.content, edited.author)
        if regenerated is None:
            logger.debug("Edit of %d has no code block; reply kept", edited.message_id)
            return
        try:
            sent = await self._platform.edit_message(
                reply.channel_id, reply.message_id, regenerated,
            )
        except PlatformError as exc:
            logger.warning("Could not edit reply %d: %s", reply.message_id, exc)
            return

        new_content = sent.to_snapshot().content
        await self._history.mutate(
            edited.message_id,
            lambda snapshot: snapshot.model_copy(update={"content": new_content}),
        )

    async def _on_message_deleted(self, event: EventEnvelope) -> None:
        deleted: MessageDeleted = event.parsed()
        try:
            reply = self._history.require(deleted.message_id)
        except CacheMiss:
            return
        await self._platform.delete_quietly(reply.channel_id, reply.message_id)
        await self._history.remove(deleted.message_id)

    async def _on_reaction_added(self, event: EventEnvelope) -> None:
        reaction: ReactionAdded = event.parsed()
        self._collector.feed(reaction)

    # ── Internal ──

    def _spawn(self, coro: Awaitable[Any], name: str) -> None:
        task = asyncio.create_task(self._guarded(coro, name), name=name)
        self._bg_tasks.add(task)
        task.add_done_callback(self._bg_tasks.discard)

    async def _guarded(self, coro: Awaitable[Any], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Background task %s failed: %s", name, exc, exc_info=True)
