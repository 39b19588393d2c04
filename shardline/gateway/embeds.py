"""
Default rendering collaborator — turns semantic results into platform
messages.  The core only decides *what* to say; swap the Renderer to
change how it looks.
"""

from __future__ import annotations

from datetime import datetime, timezone

from shardline.gateway.channels import Embed, EmbedField, OutboundMessage
from shardline.gateway.events import Author, GroupDescriptor

COLOR_FAIL = 0xFF0000
COLOR_OKAY = 0x00FF00
COLOR_INFO = 0x7289DA

BLOCKED_MESSAGE = (
    "This server or your user is blocked from executing commands. "
    "This may have happened due to abuse, spam, or other reasons. "
    "If you feel that this has been done in error, request an unban "
    "in the support server."
)

RATE_LIMITED_MESSAGE = "You are sending requests too fast!"


class Renderer:
    """Builds OutboundMessages for every reply the core sends."""

    def __init__(self, bot_name: str = "Compiler") -> None:
        self.bot_name = bot_name

    def fail(self, author: Author, reason: str) -> OutboundMessage:
        return OutboundMessage(
            content=f"<@{author.id}>",
            embed=Embed(
                title="Critical error:",
                description=reason,
                color=COLOR_FAIL,
                footer=f"Requested by: {author.tag}",
            ),
        )

    def result(self, author: Author, language: str, output: str, *, ok: bool = True) -> OutboundMessage:
        fields = [EmbedField(name="Language", value=language, inline=True)]
        return OutboundMessage(
            embed=Embed(
                title="Compilation successful" if ok else "Compilation failed",
                description=f"```\n{output}\n```" if output else "No output",
                color=COLOR_OKAY if ok else COLOR_FAIL,
                fields=fields,
                footer=f"Requested by: {author.tag}",
            ),
        )

    def join(self, group: GroupDescriptor) -> OutboundMessage:
        return OutboundMessage(
            embed=Embed(
                title="Guild joined",
                description=group.name,
                color=COLOR_OKAY,
                fields=[
                    EmbedField(name="Identifier", value=str(group.id), inline=True),
                    EmbedField(name="Members", value=str(group.member_count), inline=True),
                ],
                footer=_timestamp(),
            ),
        )

    def leave(self, group_id: int) -> OutboundMessage:
        return OutboundMessage(
            embed=Embed(
                title="Guild left",
                color=COLOR_FAIL,
                fields=[EmbedField(name="Identifier", value=str(group_id), inline=True)],
                footer=_timestamp(),
            ),
        )

    def welcome(self) -> OutboundMessage:
        return OutboundMessage(
            embed=Embed(
                title=f"Thanks for adding {self.bot_name}!",
                description=(
                    "Drop a source file into any channel and react to the "
                    "marker to run it, or use the compile command directly."
                ),
                color=COLOR_INFO,
            ),
        )


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
