"""
Per-Shard Event Queue — keeps each shard's events in emission order.

One asyncio.Queue and one worker task per shard.  A shard's events are
handed to the processor one at a time; different shards run in parallel.
Long-running work (confirmation windows) is spawned off by the Gateway,
so a slow session never stalls its shard's queue.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from shardline.gateway.events import EventEnvelope

logger = logging.getLogger("gateway.queue")

EventProcessor = Callable[[EventEnvelope], Awaitable[Any]]

SLOW_EVENT_SECONDS = 5.0


class ShardQueueManager:
    """
    Manages one FIFO queue per shard id.

    Usage:
        mgr = ShardQueueManager(processor=gateway.on_event)
        await mgr.start()
        await mgr.enqueue(event)
    """

    def __init__(self, processor: EventProcessor) -> None:
        self._processor = processor
        self._queues: dict[int, asyncio.Queue[EventEnvelope]] = {}
        self._workers: dict[int, asyncio.Task] = {}
        self._running = False

    # ── Public API ──

    async def start(self) -> None:
        self._running = True
        logger.info("ShardQueueManager started")

    async def stop(self) -> None:
        """Let queued events finish, then stop every worker."""
        self._running = False
        for shard_id in list(self._workers):
            await self._destroy_queue(shard_id)
        logger.info("ShardQueueManager stopped")

    async def enqueue(self, event: EventEnvelope) -> None:
        if not self._running:
            raise RuntimeError("ShardQueueManager is not running")
        shard_id = event.shard_id
        if shard_id not in self._queues:
            self._create_queue(shard_id)
        await self._queues[shard_id].put(event)
        logger.debug(
            "Enqueued %s for shard %d (depth=%d)",
            event.event_type.value, shard_id, self._queues[shard_id].qsize(),
        )

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        for q in list(self._queues.values()):
            await q.join()

    @property
    def active_shards(self) -> list[int]:
        return sorted(self._queues)

    def queue_depth(self, shard_id: int) -> int:
        q = self._queues.get(shard_id)
        return q.qsize() if q else 0

    # ── Internal ──

    def _create_queue(self, shard_id: int) -> None:
        q: asyncio.Queue[EventEnvelope] = asyncio.Queue()
        self._queues[shard_id] = q
        self._workers[shard_id] = asyncio.create_task(self._worker_loop(shard_id))
        logger.debug("Created queue + worker for shard %d", shard_id)

    async def _worker_loop(self, shard_id: int) -> None:
        q = self._queues.get(shard_id)
        if q is None:
            return

        while self._running or not q.empty():
            try:
                event = await asyncio.wait_for(q.get(), timeout=1.0)
            except asyncio.TimeoutError:
                if not self._running:
                    break
                continue

            try:
                t0 = time.monotonic()
                await self._processor(event)
                elapsed = time.monotonic() - t0
                if elapsed > SLOW_EVENT_SECONDS:
                    logger.warning(
                        "Slow event: %s on shard %d took %.1fs",
                        event.event_type.value, shard_id, elapsed,
                    )
            except Exception as exc:
                logger.error(
                    "Error processing %s on shard %d: %s",
                    event.event_type.value, shard_id, exc,
                    exc_info=True,
                )
            finally:
                q.task_done()

    async def _destroy_queue(self, shard_id: int) -> None:
        worker = self._workers.pop(shard_id, None)
        if worker is not None:
            try:
                await asyncio.wait_for(worker, timeout=5.0)
            except asyncio.TimeoutError:
                worker.cancel()
                try:
                    await worker
                except asyncio.CancelledError:
                    pass
        self._queues.pop(shard_id, None)
        logger.debug("Destroyed queue for shard %d", shard_id)
