"""
Command Middleware Chain — ordered before/after interceptors around every
dispatched command.

``before`` hooks run in order and the first one returning False stops the
command from being dispatched.  ``after`` hooks always all run, whatever
the command's outcome; one raising is logged and the rest still run.

Default chain:
  1. RequestMetricInterceptor   count every request (when tracking)
  2. BlocklistInterceptor       deny blocked users / groups
  3. RateLimitInterceptor       deny users over the sliding-window limit
  4. FailureReplyInterceptor    render + send + cache a failure reply
  5. CommandMetricInterceptor   count every executed command (when tracking)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Sequence

from shardline.gateway.blocklist import BlocklistGuard
from shardline.gateway.channels import MessagingPlatform
from shardline.gateway.embeds import BLOCKED_MESSAGE, RATE_LIMITED_MESSAGE, Renderer
from shardline.gateway.events import ChatMessage
from shardline.gateway.history import MessageHistoryCache
from shardline.gateway.stats import StatsManager

logger = logging.getLogger("gateway.middleware")

# Group id used when a command arrives outside any group (direct messages)
NO_GROUP = 0

RATE_LIMIT_WINDOW_SECONDS = 10
RATE_LIMIT_MAX_COMMANDS = 5


@dataclass
class CommandOutcome:
    """Result of running a command body."""

    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls) -> CommandOutcome:
        return cls()

    @classmethod
    def failure(cls, error: BaseException | str) -> CommandOutcome:
        return cls(error=str(error))


def group_of(message: ChatMessage) -> int:
    return message.group_id if message.group_id is not None else NO_GROUP


class CommandInterceptor:
    """Base interceptor.  Override either hook."""

    name: str = ""

    async def before(self, message: ChatMessage) -> bool:
        return True

    async def after(
        self, message: ChatMessage, command_name: str, outcome: CommandOutcome
    ) -> None:
        return None


class RequestMetricInterceptor(CommandInterceptor):
    name = "request_metric"

    def __init__(self, stats: StatsManager) -> None:
        self._stats = stats

    async def before(self, message: ChatMessage) -> bool:
        if self._stats.should_track():
            await self._stats.post_request()
        return True


class BlocklistInterceptor(CommandInterceptor):
    name = "blocklist"

    def __init__(
        self,
        blocklist: BlocklistGuard,
        platform: MessagingPlatform,
        renderer: Renderer,
    ) -> None:
        self._blocklist = blocklist
        self._platform = platform
        self._renderer = renderer

    async def before(self, message: ChatMessage) -> bool:
        group_id = group_of(message)
        author_blocked = self._blocklist.contains(message.author.id)
        group_blocked = self._blocklist.contains(group_id)
        if not (author_blocked or group_blocked):
            return True

        if author_blocked:
            logger.warning("Blocked user %s [%d]", message.author.tag, message.author.id)
        else:
            logger.warning("Blocked guild %d", group_id)
        await self._platform.send_quietly(
            message.channel_id, self._renderer.fail(message.author, BLOCKED_MESSAGE)
        )
        return False


class RateLimitInterceptor(CommandInterceptor):
    """Sliding-window limit per user."""

    name = "rate_limit"

    def __init__(
        self,
        platform: MessagingPlatform,
        renderer: Renderer,
        *,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        max_commands: int = RATE_LIMIT_MAX_COMMANDS,
    ) -> None:
        self._platform = platform
        self._renderer = renderer
        self._window = window_seconds
        self._max = max_commands
        self._timestamps: dict[int, list[float]] = {}
        self._last_sweep = 0.0

    @property
    def tracked_users(self) -> int:
        return len(self._timestamps)

    def is_rate_limited(self, user_id: int) -> bool:
        """Record one request and report whether it exceeds the limit."""
        now = time.monotonic()
        cutoff = now - self._window
        if now - self._last_sweep >= self._window:
            self._sweep(cutoff)
            self._last_sweep = now
        timestamps = [t for t in self._timestamps.get(user_id, []) if t > cutoff]

        if len(timestamps) >= self._max:
            self._timestamps[user_id] = timestamps
            return True

        timestamps.append(now)
        self._timestamps[user_id] = timestamps
        return False

    def _sweep(self, cutoff: float) -> None:
        """Forget users with no request inside the window."""
        stale = [
            uid for uid, stamps in self._timestamps.items()
            if not stamps or stamps[-1] <= cutoff
        ]
        for uid in stale:
            del self._timestamps[uid]

    async def before(self, message: ChatMessage) -> bool:
        if not self.is_rate_limited(message.author.id):
            return True
        logger.info("Rate limited %s [%d]", message.author.tag, message.author.id)
        await self._platform.send_quietly(
            message.channel_id, self._renderer.fail(message.author, RATE_LIMITED_MESSAGE)
        )
        return False


class FailureReplyInterceptor(CommandInterceptor):
    name = "failure_reply"

    def __init__(
        self,
        platform: MessagingPlatform,
        renderer: Renderer,
        history: MessageHistoryCache,
    ) -> None:
        self._platform = platform
        self._renderer = renderer
        self._history = history

    async def after(
        self, message: ChatMessage, command_name: str, outcome: CommandOutcome
    ) -> None:
        if outcome.ok:
            return
        reply = self._renderer.fail(message.author, outcome.error or "Unknown error")
        sent = await self._platform.send_quietly(message.channel_id, reply)
        if sent is not None:
            # keyed by the invoking message so a later edit/delete of it
            # finds this reply
            await self._history.put(message.id, sent.to_snapshot())


class CommandMetricInterceptor(CommandInterceptor):
    name = "command_metric"

    def __init__(self, stats: StatsManager) -> None:
        self._stats = stats

    async def after(
        self, message: ChatMessage, command_name: str, outcome: CommandOutcome
    ) -> None:
        if self._stats.should_track():
            await self._stats.command_executed(command_name, group_of(message))


class CommandMiddlewareChain:
    """Runs interceptors around a command, in registration order."""

    def __init__(self, interceptors: Sequence[CommandInterceptor] = ()) -> None:
        self._interceptors: list[CommandInterceptor] = list(interceptors)

    @classmethod
    def default(
        cls,
        *,
        stats: StatsManager,
        blocklist: BlocklistGuard,
        platform: MessagingPlatform,
        history: MessageHistoryCache,
        renderer: Renderer | None = None,
        rate_limit_window: float = RATE_LIMIT_WINDOW_SECONDS,
        rate_limit_max: int = RATE_LIMIT_MAX_COMMANDS,
    ) -> CommandMiddlewareChain:
        renderer = renderer or Renderer()
        return cls([
            RequestMetricInterceptor(stats),
            BlocklistInterceptor(blocklist, platform, renderer),
            RateLimitInterceptor(
                platform, renderer,
                window_seconds=rate_limit_window,
                max_commands=rate_limit_max,
            ),
            FailureReplyInterceptor(platform, renderer, history),
            CommandMetricInterceptor(stats),
        ])

    def add(self, interceptor: CommandInterceptor) -> None:
        self._interceptors.append(interceptor)

    @property
    def interceptors(self) -> list[str]:
        return [i.name or type(i).__name__ for i in self._interceptors]

    async def before(self, message: ChatMessage) -> bool:
        for interceptor in self._interceptors:
            try:
                allowed = await interceptor.before(message)
            except Exception as exc:
                logger.error(
                    "Before-hook %s failed for %d: %s",
                    interceptor.name, message.author.id, exc, exc_info=True,
                )
                return False
            if not allowed:
                logger.debug(
                    "Command from %d stopped by %s", message.author.id, interceptor.name,
                )
                return False
        return True

    async def after(
        self, message: ChatMessage, command_name: str, outcome: CommandOutcome
    ) -> None:
        for interceptor in self._interceptors:
            try:
                await interceptor.after(message, command_name, outcome)
            except Exception as exc:
                logger.error(
                    "After-hook %s failed for command %s: %s",
                    interceptor.name, command_name, exc, exc_info=True,
                )
