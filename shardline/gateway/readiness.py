"""
Shard Readiness Aggregator — the multi-shard readiness barrier.

Each shard reports ready once with the number of groups it covers.  The
report that brings ``reports_received`` up to the expected total is the
only one flagged ``just_became_ready``.  The duplicate check, the counter
increment and the barrier check all happen inside one critical section,
so racing reporters can never both see the transition.

Ready events can fire again well after startup (session resumes); those
land here as duplicates and are rejected without touching the counters.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from shardline.gateway.errors import DuplicateReport

logger = logging.getLogger("gateway.readiness")


@dataclass(frozen=True)
class ShardRecord:
    shard_index: int
    group_count: int
    reported: bool = True


@dataclass(frozen=True)
class AggregateSnapshot:
    """What a successful report returns to the caller."""

    shard_index: int
    reports_received: int
    expected_shard_total: int
    cumulative_groups: int
    all_ready: bool
    just_became_ready: bool


class ShardReadinessAggregator:
    """
    Tracks shard reports and the running group sum.

    ``expected_shard_total`` may be given up front; otherwise it is fixed
    by the ``total_shards`` of the first report.
    """

    def __init__(self, expected_shard_total: int | None = None) -> None:
        if expected_shard_total is not None and expected_shard_total < 1:
            raise ValueError(
                f"expected_shard_total must be >= 1, got {expected_shard_total}"
            )
        self._expected = expected_shard_total
        self._records: dict[int, ShardRecord] = {}
        self._cumulative_groups = 0
        self._all_ready = False
        self._lock = asyncio.Lock()

    # ── Reads ──

    @property
    def expected_shard_total(self) -> int | None:
        return self._expected

    @property
    def reports_received(self) -> int:
        return len(self._records)

    @property
    def cumulative_groups(self) -> int:
        return self._cumulative_groups

    @property
    def all_ready(self) -> bool:
        return self._all_ready

    def record(self, shard_index: int) -> ShardRecord | None:
        return self._records.get(shard_index)

    def snapshot(self) -> dict:
        return {
            "expected_shard_total": self._expected,
            "reports_received": len(self._records),
            "cumulative_groups": self._cumulative_groups,
            "all_ready": self._all_ready,
            "shards": sorted(self._records),
        }

    # ── Reporting ──

    async def report_shard_ready(
        self,
        shard_index: int,
        group_count: int,
        total_shards: int | None = None,
    ) -> AggregateSnapshot:
        """
        Record a shard's ready report.

        Raises DuplicateReport when the index has already reported, is out
        of range, or the barrier has already closed.
        """
        if group_count < 0:
            raise ValueError(f"group_count must be >= 0, got {group_count}")

        async with self._lock:
            if self._expected is None:
                if total_shards is None or total_shards < 1:
                    raise ValueError("total_shards is required for the first report")
                self._expected = total_shards
            elif total_shards is not None and total_shards != self._expected:
                logger.warning(
                    "Shard %d reports %d total shards, expected %d",
                    shard_index, total_shards, self._expected,
                )

            if self._all_ready:
                raise DuplicateReport(shard_index, "readiness barrier already closed")
            if shard_index in self._records:
                raise DuplicateReport(shard_index)
            if not 0 <= shard_index < self._expected:
                raise DuplicateReport(
                    shard_index, f"index outside 0..{self._expected - 1}"
                )

            self._records[shard_index] = ShardRecord(shard_index, group_count)
            self._cumulative_groups += group_count

            just_became_ready = len(self._records) == self._expected
            if just_became_ready:
                self._all_ready = True

            result = AggregateSnapshot(
                shard_index=shard_index,
                reports_received=len(self._records),
                expected_shard_total=self._expected,
                cumulative_groups=self._cumulative_groups,
                all_ready=self._all_ready,
                just_became_ready=just_became_ready,
            )

        logger.info(
            "[Shard %d] Ready (%d/%d shards, %d groups)",
            shard_index, result.reports_received,
            result.expected_shard_total, result.cumulative_groups,
        )
        return result
