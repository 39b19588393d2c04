"""
Gateway Setup — builds and wires every core component once at startup.

Each shared container (state store, history cache, readiness aggregator,
blocklist) is created here and injected into the components that use it;
nothing reaches for a global.  The module-level references only exist so
the HTTP layer can find the running instances.
"""

from __future__ import annotations

import logging

from shardline import settings
from shardline.gateway.blocklist import BlocklistGuard
from shardline.gateway.channels import MessagingPlatform
from shardline.gateway.collector import ReactionCollector
from shardline.gateway.confirm import ConfirmGatedRequestExecutor
from shardline.gateway.dispatchers.harness import HarnessPlatform
from shardline.gateway.embeds import Renderer
from shardline.gateway.execution import ExecutionService, TargetResolver
from shardline.gateway.gateway import Gateway
from shardline.gateway.history import MessageHistoryCache
from shardline.gateway.middleware import CommandMiddlewareChain
from shardline.gateway.queue import ShardQueueManager
from shardline.gateway.readiness import ShardReadinessAggregator
from shardline.gateway.state import SharedStateStore
from shardline.gateway.stats import DblStatsPublisher, StatsManager, StatsPublisher
from shardline.gateway.wandbox import WandboxExecutionService

logger = logging.getLogger("gateway.setup")

# Module-level singletons (set during initialize)
_gateway: Gateway | None = None
_queue_manager: ShardQueueManager | None = None
_blocklist: BlocklistGuard | None = None
_platform: MessagingPlatform | None = None


async def initialize_gateway(
    *,
    platform: MessagingPlatform | None = None,
    service: ExecutionService | None = None,
    publisher: StatsPublisher | None = None,
) -> Gateway:
    """
    Wire together all core components and start the shard queues.

    ``platform`` defaults to the in-memory harness; a real deployment
    passes its platform client in.
    """
    global _gateway, _queue_manager, _blocklist, _platform

    logger.info("Initializing shardline gateway...")

    # 1. Shared containers
    state = SharedStateStore(settings.shared_state_defaults())
    history = MessageHistoryCache(max_entries=settings.MESSAGE_CACHE_SIZE)
    readiness = ShardReadinessAggregator(settings.SHARD_TOTAL or None)
    _blocklist = BlocklistGuard(settings.BLOCKLIST)
    stats = StatsManager(settings.STATS_API_LINK, settings.STATS_API_KEY)

    # 2. Collaborators
    _platform = platform or HarnessPlatform()
    service = service or WandboxExecutionService(settings.WANDBOX_API_URL)
    if publisher is None:
        publisher = _build_publisher(state)
    renderer = Renderer()

    # 3. Confirm workflow + middleware
    collector = ReactionCollector()
    confirm = ConfirmGatedRequestExecutor(
        platform=_platform,
        state=state,
        history=history,
        collector=collector,
        service=service,
        resolver=TargetResolver(),
        renderer=renderer,
        collect_timeout=settings.COLLECT_TIMEOUT_SECONDS,
        max_attachment_bytes=settings.MAX_ATTACHMENT_BYTES,
        stats=stats,
    )
    middleware = CommandMiddlewareChain.default(
        stats=stats,
        blocklist=_blocklist,
        platform=_platform,
        history=history,
        renderer=renderer,
        rate_limit_window=settings.RATE_LIMIT_WINDOW_SECONDS,
        rate_limit_max=settings.RATE_LIMIT_MAX_COMMANDS,
    )

    # 4. Gateway
    _gateway = Gateway(
        platform=_platform,
        state=state,
        history=history,
        readiness=readiness,
        collector=collector,
        confirm=confirm,
        middleware=middleware,
        stats=stats,
        publisher=publisher,
        renderer=renderer,
    )

    # 5. Per-shard queues feeding the gateway
    _queue_manager = ShardQueueManager(processor=_gateway.on_event)
    await _queue_manager.start()

    logger.info(
        "Gateway initialized: platform=%s, middleware=%s, stats tracking=%s",
        _platform.platform_name or type(_platform).__name__,
        middleware.interceptors,
        stats.should_track(),
    )
    return _gateway


async def shutdown_gateway() -> None:
    """Drain the shard queues and cancel open confirmation windows."""
    global _gateway, _queue_manager
    if _queue_manager:
        await _queue_manager.stop()
    if _gateway:
        await _gateway.cancel_background()
    logger.info("Gateway shutdown complete")
    _gateway = None
    _queue_manager = None


def _build_publisher(state: SharedStateStore) -> StatsPublisher | None:
    bot_id = state.get_int("BOT_ID")
    if not settings.DBL_TOKEN or bot_id is None:
        return None
    return DblStatsPublisher(bot_id, settings.DBL_TOKEN, settings.DBL_API_URL)


def get_gateway() -> Gateway | None:
    return _gateway


def get_queue_manager() -> ShardQueueManager | None:
    return _queue_manager


def get_blocklist() -> BlocklistGuard | None:
    return _blocklist


def get_platform() -> MessagingPlatform | None:
    return _platform
