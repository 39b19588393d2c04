"""
Messaging Platform boundary — everything the core asks the chat platform
to do goes through a MessagingPlatform.

The core never talks to an HTTP client directly.  A concrete platform
(REST client, test harness) implements the abstract methods and raises
PlatformError on failure; the ``*_quietly`` helpers wrap the calls whose
failures the core deliberately ignores.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from shardline.gateway.errors import PlatformError
from shardline.gateway.events import Attachment, Emoji
from shardline.gateway.history import MessageSnapshot

logger = logging.getLogger("gateway.channels")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Payloads
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class EmbedField(BaseModel):
    name: str
    value: str
    inline: bool = False


class Embed(BaseModel):
    title: str = ""
    description: str = ""
    color: int = 0
    fields: list[EmbedField] = Field(default_factory=list)
    footer: str = ""
    thumbnail_url: str = ""


class OutboundMessage(BaseModel):
    """A platform-native message the core wants delivered."""

    content: str = ""
    embed: Optional[Embed] = None
    reference_message_id: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SentMessage(BaseModel):
    """A message the platform accepted."""

    id: int
    channel_id: int
    author_id: int
    content: str = ""
    embed: Optional[Embed] = None
    reference_message_id: Optional[int] = None
    sent_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_snapshot(self) -> MessageSnapshot:
        """Snapshot for the history cache; embeds are flattened to text."""
        return MessageSnapshot(
            message_id=self.id,
            channel_id=self.channel_id,
            author_id=self.author_id,
            content=render_text(self.content, self.embed),
            sent_at=self.sent_at,
        )


def render_text(content: str, embed: Embed | None) -> str:
    if embed is None:
        return content
    parts = [p for p in (content, embed.title, embed.description) if p]
    parts.extend(f"{f.name}: {f.value}" for f in embed.fields)
    return "\n".join(parts)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Platform ABC
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class MessagingPlatform(ABC):
    """Abstract chat platform.  Every method raises PlatformError on failure."""

    platform_name: str = ""

    @abstractmethod
    async def send_message(
        self, channel_id: int, message: OutboundMessage
    ) -> SentMessage:
        """Deliver a message to a channel."""

    @abstractmethod
    async def edit_message(
        self, channel_id: int, message_id: int, message: OutboundMessage
    ) -> SentMessage:
        """Replace the content of a message the bot sent earlier."""

    @abstractmethod
    async def delete_message(self, channel_id: int, message_id: int) -> None:
        """Delete a message."""

    @abstractmethod
    async def add_reaction(
        self, channel_id: int, message_id: int, emoji: Emoji
    ) -> None:
        """React to a message.  Raises ReactionPermissionDenied when not allowed."""

    @abstractmethod
    async def clear_reactions(self, channel_id: int, message_id: int) -> None:
        """Strip every reaction from a message."""

    @abstractmethod
    async def fetch_attachment(self, attachment: Attachment) -> str:
        """Download an attachment as text."""

    @abstractmethod
    async def update_presence(self, group_count: int) -> None:
        """Push a presence update to every shard."""

    # ── Best-effort helpers ──

    async def send_quietly(
        self, channel_id: int, message: OutboundMessage
    ) -> SentMessage | None:
        """Send, returning None instead of raising on failure."""
        try:
            return await self.send_message(channel_id, message)
        except PlatformError as exc:
            logger.warning("Send to channel %d failed: %s", channel_id, exc)
            return None

    async def delete_quietly(self, channel_id: int, message_id: int) -> bool:
        try:
            await self.delete_message(channel_id, message_id)
            return True
        except PlatformError as exc:
            logger.debug("Delete of message %d failed: %s", message_id, exc)
            return False

    async def clear_reactions_quietly(self, channel_id: int, message_id: int) -> None:
        try:
            await self.clear_reactions(channel_id, message_id)
        except PlatformError as exc:
            logger.debug("Clearing reactions on %d failed: %s", message_id, exc)

    async def update_presence_quietly(self, group_count: int) -> None:
        try:
            await self.update_presence(group_count)
        except PlatformError as exc:
            logger.warning("Presence update failed: %s", exc)
