"""
Tests for the Event Envelope model.

Tests cover:
  - Envelope defaults and factories
  - Typed payload parsing per event kind
  - Lifecycle / content classification
  - Validation failures surface as pydantic errors
"""

import pytest
from pydantic import ValidationError

from shardline.gateway.events import (
    CONTENT_EVENTS,
    LIFECYCLE_EVENTS,
    Author,
    ChatMessage,
    Emoji,
    EventEnvelope,
    EventType,
    GroupDescriptor,
    MessageEdited,
    ReactionAdded,
    ShardReady,
)


class TestEnvelopeCreation:

    def test_minimal_creation(self):
        env = EventEnvelope(event_type=EventType.GROUP_LEFT)
        assert env.event_id
        assert env.timestamp.tzinfo is not None
        assert env.shard_id == 0
        assert env.payload == {}

    def test_event_type_from_string(self):
        env = EventEnvelope(event_type="MESSAGE_DELETED", payload={"message_id": 1, "channel_id": 2})
        assert env.event_type is EventType.MESSAGE_DELETED

    def test_unknown_event_type_rejected(self):
        with pytest.raises(ValidationError):
            EventEnvelope(event_type="TYPING_STARTED")

    def test_every_type_classified_once(self):
        assert LIFECYCLE_EVENTS | CONTENT_EVENTS == set(EventType)
        assert not LIFECYCLE_EVENTS & CONTENT_EVENTS


class TestFactories:

    def test_shard_ready(self):
        env = EventEnvelope.shard_ready(2, 3, [10, 11], bot_avatar_url="https://cdn/a.png")
        assert env.shard_id == 2
        ready = env.parsed()
        assert isinstance(ready, ShardReady)
        assert ready.group_count == 2
        assert ready.total_shards == 3

    def test_group_joined(self):
        env = EventEnvelope.group_joined(GroupDescriptor(id=5, name="g"), shard_id=1)
        group = env.parsed()
        assert isinstance(group, GroupDescriptor)
        assert group.id == 5

    def test_message_created(self):
        message = ChatMessage(id=1, channel_id=2, author=Author(id=3, name="bob"))
        parsed = EventEnvelope.message_created(message).parsed()
        assert isinstance(parsed, ChatMessage)
        assert parsed.author.tag == "bob#0000"

    def test_message_edited_without_content(self):
        parsed = EventEnvelope.message_edited(1, 2, None, None).parsed()
        assert isinstance(parsed, MessageEdited)
        assert parsed.content is None
        assert parsed.author is None

    def test_reaction_added(self):
        parsed = EventEnvelope.reaction_added(1, 2, 3, Emoji(name="logo", id=9)).parsed()
        assert isinstance(parsed, ReactionAdded)
        assert parsed.emoji == Emoji(name="logo", id=9)

    def test_json_round_trip(self):
        env = EventEnvelope.group_left(44, shard_id=1)
        restored = EventEnvelope.model_validate_json(env.model_dump_json())
        assert restored.event_id == env.event_id
        assert restored.parsed().group_id == 44


class TestPayloadValidation:

    def test_bad_payload_raises(self):
        env = EventEnvelope(event_type=EventType.MESSAGE_CREATED, payload={"id": "x"})
        with pytest.raises(ValidationError):
            env.parsed()


class TestEmoji:

    def test_unicode_str(self):
        assert str(Emoji(name="💻")) == "💻"

    def test_custom_str(self):
        assert str(Emoji(name="logo", id=55)) == "<:logo:55>"

    def test_frozen(self):
        emoji = Emoji(name="💻")
        with pytest.raises(ValidationError):
            emoji.name = "x"
