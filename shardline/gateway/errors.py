"""
Error taxonomy for the coordination core.

None of these are fatal.  Optional side effects (reaction posting, stats
publication, reply deletion) catch them where they happen; only
ExecutionError is surfaced, and only as a rendered reply.
"""

from __future__ import annotations


class GatewayError(Exception):
    pass


class DuplicateReport(GatewayError):
    """A shard reported ready twice, or after the readiness barrier closed."""

    def __init__(self, shard_index: int, reason: str = "already reported") -> None:
        super().__init__(f"shard {shard_index}: {reason}")
        self.shard_index = shard_index
        self.reason = reason


class CacheMiss(GatewayError):
    """Lookup for a message that is not tracked.  Callers treat it as a no-op."""

    def __init__(self, message_id: int) -> None:
        super().__init__(f"message {message_id} is not cached")
        self.message_id = message_id


class PlatformError(GatewayError):
    """Raised by the messaging-platform boundary when a call fails."""


class ReactionPermissionDenied(PlatformError):
    """The marker reaction could not be posted; the session never arms."""


class CollectionTimeout(GatewayError):
    """The confirmation window elapsed without a matching reaction."""


class ExecutionError(GatewayError):
    """The external execution service failed the request."""


class PublishError(GatewayError):
    """Publishing aggregate stats to the external endpoint failed."""
