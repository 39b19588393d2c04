"""
Harness Platform — an in-memory MessagingPlatform.

Keeps everything it is asked to do in lists so the HTTP harness can poll
them and tests can assert on them.  Individual operations can be told to
fail to exercise the core's best-effort paths.
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict

from shardline.gateway.channels import (
    MessagingPlatform,
    OutboundMessage,
    SentMessage,
)
from shardline.gateway.errors import PlatformError, ReactionPermissionDenied
from shardline.gateway.events import Attachment, Emoji

logger = logging.getLogger("gateway.dispatchers.harness")


class HarnessPlatform(MessagingPlatform):
    """Records sends, edits, deletes, reactions and presence updates."""

    platform_name = "harness"

    def __init__(self, bot_user_id: int = 1, first_message_id: int = 900_000) -> None:
        self.bot_user_id = bot_user_id
        self._ids = itertools.count(first_message_id)
        self.sent: list[SentMessage] = []
        self.edits: list[SentMessage] = []
        self.deleted: list[tuple[int, int]] = []
        self.reactions: list[tuple[int, int, Emoji]] = []
        self.cleared: list[tuple[int, int]] = []
        self.presence: list[int] = []
        self.attachments: dict[int, str] = {}
        # operation name → remaining failures (-1 = always)
        self._failures: dict[str, int] = defaultdict(int)

    def fail(self, operation: str, times: int = -1) -> None:
        """Make ``operation`` (e.g. "send_message") raise PlatformError."""
        self._failures[operation] = times

    def _maybe_fail(self, operation: str) -> None:
        remaining = self._failures.get(operation, 0)
        if remaining == 0:
            return
        if remaining > 0:
            self._failures[operation] = remaining - 1
        if operation == "add_reaction":
            raise ReactionPermissionDenied("Missing Permissions")
        raise PlatformError(f"{operation} failed")

    async def send_message(self, channel_id, message: OutboundMessage) -> SentMessage:
        self._maybe_fail("send_message")
        sent = SentMessage(
            id=next(self._ids),
            channel_id=channel_id,
            author_id=self.bot_user_id,
            content=message.content,
            embed=message.embed,
            reference_message_id=message.reference_message_id,
        )
        self.sent.append(sent)
        logger.debug("Harness stored message %d in channel %d", sent.id, channel_id)
        return sent

    async def edit_message(self, channel_id, message_id, message: OutboundMessage) -> SentMessage:
        self._maybe_fail("edit_message")
        edited = SentMessage(
            id=message_id,
            channel_id=channel_id,
            author_id=self.bot_user_id,
            content=message.content,
            embed=message.embed,
            reference_message_id=message.reference_message_id,
        )
        self.edits.append(edited)
        return edited

    async def delete_message(self, channel_id, message_id) -> None:
        self._maybe_fail("delete_message")
        self.deleted.append((channel_id, message_id))

    async def add_reaction(self, channel_id, message_id, emoji: Emoji) -> None:
        self._maybe_fail("add_reaction")
        self.reactions.append((channel_id, message_id, emoji))

    async def clear_reactions(self, channel_id, message_id) -> None:
        self._maybe_fail("clear_reactions")
        self.cleared.append((channel_id, message_id))

    async def fetch_attachment(self, attachment: Attachment) -> str:
        self._maybe_fail("fetch_attachment")
        try:
            return self.attachments[attachment.id]
        except KeyError:
            raise PlatformError(f"attachment {attachment.id} not found") from None

    async def update_presence(self, group_count: int) -> None:
        self._maybe_fail("update_presence")
        self.presence.append(group_count)

    def sent_to(self, channel_id: int) -> list[SentMessage]:
        return [m for m in self.sent if m.channel_id == channel_id]

    def clear(self) -> None:
        self.sent.clear()
        self.edits.clear()
        self.deleted.clear()
        self.reactions.clear()
        self.cleared.clear()
        self.presence.clear()
