"""
Shared fixtures for gateway core tests.

Everything runs against the in-memory HarnessPlatform and a scripted
ExecutionService, so no network is touched.
"""

import asyncio

import pytest

from shardline.gateway.blocklist import BlocklistGuard
from shardline.gateway.collector import ReactionCollector
from shardline.gateway.confirm import ConfirmGatedRequestExecutor
from shardline.gateway.dispatchers.harness import HarnessPlatform
from shardline.gateway.errors import ExecutionError
from shardline.gateway.events import Attachment, Author, ChatMessage
from shardline.gateway.execution import (
    CompileRequest,
    ExecutionResult,
    ExecutionService,
)
from shardline.gateway.gateway import Gateway
from shardline.gateway.history import MessageHistoryCache
from shardline.gateway.middleware import CommandMiddlewareChain
from shardline.gateway.readiness import ShardReadinessAggregator
from shardline.gateway.state import SharedStateStore
from shardline.gateway.stats import StatsManager

COLLECT_TIMEOUT = 0.2


class ScriptedService(ExecutionService):
    """Returns a fixed output, or raises ExecutionError when ``error`` is set."""

    def __init__(self, output: str = "Hello, world!", error: str | None = None, delay: float = 0.0):
        self.output = output
        self.error = error
        self.delay = delay
        self.requests: list[CompileRequest] = []

    async def execute(self, request: CompileRequest) -> ExecutionResult:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise ExecutionError(self.error)
        return ExecutionResult(language=request.language, output=self.output)


def _make_author(user_id: int = 42, name: str = "alice") -> Author:
    return Author(id=user_id, name=name, discriminator="0001")


def _make_message(
    message_id: int = 1000,
    *,
    author: Author | None = None,
    channel_id: int = 500,
    group_id: int | None = 77,
    filename: str | None = None,
    content: str = "",
) -> ChatMessage:
    attachments = []
    if filename is not None:
        attachments.append(Attachment(id=message_id * 10, filename=filename, size=64))
    return ChatMessage(
        id=message_id,
        channel_id=channel_id,
        author=author or _make_author(),
        content=content,
        group_id=group_id,
        attachments=attachments,
    )


@pytest.fixture
def platform():
    return HarnessPlatform(bot_user_id=1)


@pytest.fixture
def state():
    return SharedStateStore({"BOT_ID": "1"})


@pytest.fixture
def history():
    return MessageHistoryCache(max_entries=50)


@pytest.fixture
def collector():
    return ReactionCollector()


@pytest.fixture
def service():
    return ScriptedService()


@pytest.fixture
def blocklist():
    return BlocklistGuard()


@pytest.fixture
def stats():
    return StatsManager()


@pytest.fixture
def executor(platform, state, history, collector, service, stats):
    return ConfirmGatedRequestExecutor(
        platform=platform,
        state=state,
        history=history,
        collector=collector,
        service=service,
        collect_timeout=COLLECT_TIMEOUT,
        stats=stats,
    )


@pytest.fixture
def gateway(platform, state, history, collector, executor, blocklist, stats):
    middleware = CommandMiddlewareChain.default(
        stats=stats,
        blocklist=blocklist,
        platform=platform,
        history=history,
    )
    return Gateway(
        platform=platform,
        state=state,
        history=history,
        readiness=ShardReadinessAggregator(),
        collector=collector,
        confirm=executor,
        middleware=middleware,
        stats=stats,
    )


@pytest.fixture
def author():
    return _make_author()


@pytest.fixture
def make_author():
    return _make_author


@pytest.fixture
def make_message():
    return _make_message


@pytest.fixture
def collect_timeout():
    return COLLECT_TIMEOUT
