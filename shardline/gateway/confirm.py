"""
Confirm-Gated Request Executor — react, collect, act, report.

When a message arrives with a source-file attachment in a language we can
run, the bot reacts with a marker emoji.  If the author clicks the same
emoji within the collection window, the file is compiled via the external
execution service and the result is posted as a reply.

Session lifecycle:

    IDLE ──react ok──▶ ARMED ──matching reaction──▶ CONFIRMED ──▶ EXECUTING
      │                  │                                         │   │
      │ react failed     │ window elapsed                   success│   │error
      ▼                  ▼                                         ▼   ▼
    ABORTED           EXPIRED                              COMPLETED   FAILED

Each triggering message gets at most one session; sessions share no
mutable state, so any number can be in flight at once.  Expiry and abort
are silent: no message is sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from shardline.gateway.channels import MessagingPlatform, OutboundMessage
from shardline.gateway.collector import ReactionCollector
from shardline.gateway.embeds import Renderer
from shardline.gateway.errors import (
    CollectionTimeout,
    ExecutionError,
    PlatformError,
)
from shardline.gateway.events import Author, ChatMessage, Emoji
from shardline.gateway.execution import (
    DEFAULT_MAX_ATTACHMENT_BYTES,
    CompileRequest,
    ExecutionResult,
    ExecutionService,
    ExecutionTarget,
    TargetResolver,
    get_message_attachment,
    parse_code_block,
)
from shardline.gateway.history import MessageHistoryCache
from shardline.gateway.middleware import group_of
from shardline.gateway.state import SharedStateStore
from shardline.gateway.stats import StatsManager

logger = logging.getLogger("gateway.confirm")

DEFAULT_COLLECT_TIMEOUT_SECONDS = 30.0
DEFAULT_MARKER = Emoji(name="💻")


class SessionState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    CONFIRMED = "confirmed"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    ABORTED = "aborted"


TERMINAL_STATES = {
    SessionState.COMPLETED,
    SessionState.FAILED,
    SessionState.EXPIRED,
    SessionState.ABORTED,
}


@dataclass
class ConfirmationSession:
    triggering_message_id: int
    channel_id: int
    requester_id: int
    marker_reaction: Emoji
    language: str
    deadline: datetime | None = None
    state: SessionState = SessionState.IDLE
    reply_id: int | None = None
    transitions: list[SessionState] = field(default_factory=list)

    def advance(self, new_state: SessionState) -> None:
        logger.info(
            "Session %d: %s → %s",
            self.triggering_message_id, self.state.value, new_state.value,
        )
        self.transitions.append(new_state)
        self.state = new_state

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class ConfirmGatedRequestExecutor:
    """Runs one ConfirmationSession per qualifying message."""

    def __init__(
        self,
        *,
        platform: MessagingPlatform,
        state: SharedStateStore,
        history: MessageHistoryCache,
        collector: ReactionCollector,
        service: ExecutionService,
        resolver: TargetResolver | None = None,
        renderer: Renderer | None = None,
        collect_timeout: float = DEFAULT_COLLECT_TIMEOUT_SECONDS,
        max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
        stats: StatsManager | None = None,
    ) -> None:
        self._platform = platform
        self._state = state
        self._history = history
        self._collector = collector
        self._service = service
        self._resolver = resolver or TargetResolver()
        self._renderer = renderer or Renderer()
        self._collect_timeout = collect_timeout
        self._max_attachment_bytes = max_attachment_bytes
        self._stats = stats
        self._sessions: dict[int, ConfirmationSession] = {}

    @property
    def active_sessions(self) -> list[ConfirmationSession]:
        return list(self._sessions.values())

    def marker_reaction(self) -> Emoji:
        """The configured logo emoji, or the default unicode marker."""
        emoji_id = self._state.get_int("LOGO_EMOJI_ID")
        if emoji_id is None:
            return DEFAULT_MARKER
        return Emoji(id=emoji_id, name=self._state.get("LOGO_EMOJI_NAME") or "logo")

    async def handle_message(self, message: ChatMessage) -> ConfirmationSession | None:
        """
        Run the full workflow for ``message``.

        Returns None if the message doesn't qualify, otherwise the session
        in its terminal state.
        """
        if not message.attachments:
            return None
        if message.id in self._sessions:
            logger.debug("Message %d already has a session", message.id)
            return None

        attachment = await get_message_attachment(
            self._platform, message.attachments, self._max_attachment_bytes,
        )
        if attachment is None:
            return None
        code, language = attachment

        target = self._resolver.resolve(language)
        if target == ExecutionTarget.NONE:
            logger.debug("No execution target for language %r", language)
            return None

        session = ConfirmationSession(
            triggering_message_id=message.id,
            channel_id=message.channel_id,
            requester_id=message.author.id,
            marker_reaction=self.marker_reaction(),
            language=language,
        )
        # check-and-insert without an await in between
        if message.id in self._sessions:
            return None
        self._sessions[message.id] = session
        try:
            confirmed = await self._arm_and_collect(session)
            if confirmed:
                request = CompileRequest(
                    language=language, code=code, author=message.author, target=target,
                )
                await self._execute(session, message, request)
        finally:
            self._sessions.pop(message.id, None)
        return session

    async def _arm_and_collect(self, session: ConfirmationSession) -> bool:
        with self._collector.subscribe(
            session.triggering_message_id,
            session.requester_id,
            session.marker_reaction,
        ) as subscription:
            try:
                await self._platform.add_reaction(
                    session.channel_id,
                    session.triggering_message_id,
                    session.marker_reaction,
                )
            except PlatformError as exc:
                logger.info(
                    "Could not react to message %d: %s",
                    session.triggering_message_id, exc,
                )
                session.advance(SessionState.ABORTED)
                return False

            session.deadline = datetime.now(timezone.utc) + timedelta(
                seconds=self._collect_timeout
            )
            session.advance(SessionState.ARMED)
            try:
                await subscription.wait(self._collect_timeout)
            except CollectionTimeout:
                session.advance(SessionState.EXPIRED)
            else:
                session.advance(SessionState.CONFIRMED)

        await self._platform.clear_reactions_quietly(
            session.channel_id, session.triggering_message_id
        )
        return session.state == SessionState.CONFIRMED

    async def _execute(
        self,
        session: ConfirmationSession,
        message: ChatMessage,
        request: CompileRequest,
    ) -> None:
        session.advance(SessionState.EXECUTING)
        result, reply = await self.run_request(request)
        if result is None:
            session.advance(SessionState.FAILED)
        else:
            reply.reference_message_id = message.id
            session.advance(SessionState.COMPLETED)

        # Counted whatever the outcome, like the command path.
        if self._stats is not None and self._stats.should_track():
            await self._stats.command_executed("compile", group_of(message))

        sent = await self._platform.send_quietly(message.channel_id, reply)
        if sent is not None:
            session.reply_id = sent.id
            await self._history.put(message.id, sent.to_snapshot())

    async def run_request(
        self, request: CompileRequest
    ) -> tuple[ExecutionResult | None, OutboundMessage]:
        """
        Execute and render.  The result is None when execution failed, in
        which case the message is a failure notice for the requester.
        """
        logger.debug("Forwarding %s", request.invocation.splitlines()[0])
        try:
            result = await self._service.execute(request)
        except ExecutionError as exc:
            logger.info("Execution failed for %d: %s", request.author.id, exc)
            return None, self._renderer.fail(request.author, str(exc))
        except Exception as exc:
            logger.error(
                "Execution service crashed for %d: %s",
                request.author.id, exc, exc_info=True,
            )
            return None, self._renderer.fail(
                request.author, "The compiler service is unavailable."
            )
        return result, self._renderer.result(
            request.author, result.language, result.output, ok=result.success,
        )

    async def rerender(self, content: str, author: Author) -> OutboundMessage | None:
        """
        Regenerate a reply from edited message content.

        Returns None when the content carries no tagged code block, e.g. a
        caption on an attachment; the existing reply is left alone.
        """
        parsed = parse_code_block(content)
        if parsed is None:
            return None
        language, code = parsed
        target = self._resolver.resolve(language)
        if target == ExecutionTarget.NONE:
            return self._renderer.fail(author, f"Unsupported language: {language}")
        request = CompileRequest(
            language=language, code=code, author=author, target=target,
        )
        _, reply = await self.run_request(request)
        return reply
