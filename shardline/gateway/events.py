"""
Event Envelope — the typed event stream coming off the gateway shards.

The transport (shard connections, heartbeats, reconnects) is a black box.
Whatever it receives is wrapped in an EventEnvelope before it reaches the
Gateway.  The Gateway only looks at ``event_type`` to pick a handler; each
handler reads the typed payload accessor for its own kind.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event kinds produced by the gateway transport."""

    # Lifecycle
    SHARD_READY = "SHARD_READY"
    GROUP_JOINED = "GROUP_JOINED"
    GROUP_LEFT = "GROUP_LEFT"

    # Content
    MESSAGE_CREATED = "MESSAGE_CREATED"
    MESSAGE_EDITED = "MESSAGE_EDITED"
    MESSAGE_DELETED = "MESSAGE_DELETED"
    REACTION_ADDED = "REACTION_ADDED"


LIFECYCLE_EVENTS = {
    EventType.SHARD_READY,
    EventType.GROUP_JOINED,
    EventType.GROUP_LEFT,
}

CONTENT_EVENTS = {
    EventType.MESSAGE_CREATED,
    EventType.MESSAGE_EDITED,
    EventType.MESSAGE_DELETED,
    EventType.REACTION_ADDED,
}


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Payload models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class Author(BaseModel):
    """The user behind a message or reaction."""

    id: int
    name: str = ""
    discriminator: str = "0000"
    bot: bool = False

    @property
    def tag(self) -> str:
        return f"{self.name}#{self.discriminator}"


class Attachment(BaseModel):
    id: int
    filename: str
    url: str = ""
    size: int = 0


class ChatMessage(BaseModel):
    """A message as delivered by the transport."""

    id: int
    channel_id: int
    author: Author
    content: str = ""
    group_id: Optional[int] = None
    attachments: list[Attachment] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)


class ChannelDescriptor(BaseModel):
    id: int
    name: str = ""


class GroupDescriptor(BaseModel):
    """A group (server) as announced on join."""

    id: int
    name: str = ""
    member_count: int = 0
    joined_at: datetime = Field(default_factory=_now)
    system_channel_id: Optional[int] = None
    channels: list[ChannelDescriptor] = Field(default_factory=list)


class Emoji(BaseModel):
    """A unicode emoji (``id`` is None) or a custom one."""

    name: str
    id: Optional[int] = None

    model_config = {"frozen": True}

    def __str__(self) -> str:
        if self.id is None:
            return self.name
        return f"<:{self.name}:{self.id}>"


class ShardReady(BaseModel):
    shard_index: int
    total_shards: int
    group_ids: list[int] = Field(default_factory=list)
    bot_user_id: int = 0
    bot_avatar_url: str = ""

    @property
    def group_count(self) -> int:
        return len(self.group_ids)


class MessageEdited(BaseModel):
    message_id: int
    channel_id: int
    content: Optional[str] = None
    author: Optional[Author] = None


class MessageDeleted(BaseModel):
    message_id: int
    channel_id: int
    group_id: Optional[int] = None


class GroupLeft(BaseModel):
    group_id: int


class ReactionAdded(BaseModel):
    message_id: int
    channel_id: int
    user_id: int
    emoji: Emoji


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Envelope
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


_PAYLOAD_MODELS: dict[EventType, type[BaseModel]] = {
    EventType.SHARD_READY: ShardReady,
    EventType.GROUP_JOINED: GroupDescriptor,
    EventType.GROUP_LEFT: GroupLeft,
    EventType.MESSAGE_CREATED: ChatMessage,
    EventType.MESSAGE_EDITED: MessageEdited,
    EventType.MESSAGE_DELETED: MessageDeleted,
    EventType.REACTION_ADDED: ReactionAdded,
}


class EventEnvelope(BaseModel):
    """Universal event wrapper; the only object that enters the Gateway."""

    event_id: str = Field(default_factory=_new_uuid)
    event_type: EventType
    shard_id: int = 0
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_now)

    model_config = {"use_enum_values": False}

    def parsed(self) -> BaseModel:
        """Validate ``payload`` into the model for this event kind."""
        return _PAYLOAD_MODELS[self.event_type].model_validate(self.payload)

    # ── Convenience factories ──

    @classmethod
    def shard_ready(
        cls,
        shard_index: int,
        total_shards: int,
        group_ids: list[int] | None = None,
        *,
        bot_user_id: int = 0,
        bot_avatar_url: str = "",
    ) -> EventEnvelope:
        ready = ShardReady(
            shard_index=shard_index,
            total_shards=total_shards,
            group_ids=group_ids or [],
            bot_user_id=bot_user_id,
            bot_avatar_url=bot_avatar_url,
        )
        return cls(
            event_type=EventType.SHARD_READY,
            shard_id=shard_index,
            payload=ready.model_dump(),
        )

    @classmethod
    def group_joined(cls, group: GroupDescriptor, *, shard_id: int = 0) -> EventEnvelope:
        return cls(
            event_type=EventType.GROUP_JOINED,
            shard_id=shard_id,
            payload=group.model_dump(),
        )

    @classmethod
    def group_left(cls, group_id: int, *, shard_id: int = 0) -> EventEnvelope:
        return cls(
            event_type=EventType.GROUP_LEFT,
            shard_id=shard_id,
            payload={"group_id": group_id},
        )

    @classmethod
    def message_created(cls, message: ChatMessage, *, shard_id: int = 0) -> EventEnvelope:
        return cls(
            event_type=EventType.MESSAGE_CREATED,
            shard_id=shard_id,
            payload=message.model_dump(),
        )

    @classmethod
    def message_edited(
        cls,
        message_id: int,
        channel_id: int,
        content: str | None,
        author: Author | None,
        *,
        shard_id: int = 0,
    ) -> EventEnvelope:
        edited = MessageEdited(
            message_id=message_id,
            channel_id=channel_id,
            content=content,
            author=author,
        )
        return cls(
            event_type=EventType.MESSAGE_EDITED,
            shard_id=shard_id,
            payload=edited.model_dump(),
        )

    @classmethod
    def message_deleted(
        cls,
        message_id: int,
        channel_id: int,
        group_id: int | None = None,
        *,
        shard_id: int = 0,
    ) -> EventEnvelope:
        return cls(
            event_type=EventType.MESSAGE_DELETED,
            shard_id=shard_id,
            payload={
                "message_id": message_id,
                "channel_id": channel_id,
                "group_id": group_id,
            },
        )

    @classmethod
    def reaction_added(
        cls,
        message_id: int,
        channel_id: int,
        user_id: int,
        emoji: Emoji,
        *,
        shard_id: int = 0,
    ) -> EventEnvelope:
        reaction = ReactionAdded(
            message_id=message_id,
            channel_id=channel_id,
            user_id=user_id,
            emoji=emoji,
        )
        return cls(
            event_type=EventType.REACTION_ADDED,
            shard_id=shard_id,
            payload=reaction.model_dump(),
        )

    def is_lifecycle(self) -> bool:
        return self.event_type in LIFECYCLE_EVENTS

    def is_content(self) -> bool:
        return self.event_type in CONTENT_EVENTS
