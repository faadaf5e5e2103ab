"""
Flush Scheduler

Periodically snapshots the full in-memory state (every market quote and every
open candlestick) into three bulk upserts. Each cycle overwrites all rows
whether or not they changed since the previous one.

The snapshot is taken and queued on the PersistenceWriter while holding the
routing lock, so flush batches and rollover writes reach the store in the
order the state changed.
"""

import asyncio
import contextlib
import logging
from typing import Optional

from dataflow.candle_aggregation.market import MarketBook
from dataflow.candle_aggregation.registry import CandleRegistry
from dataflow.persistence.store import candlestick_row, market_row, timeframe_row
from dataflow.persistence.writer import FlushBatch, PersistenceWriter, WriteRequest

logger = logging.getLogger(__name__)


class FlushScheduler:
    """
    Runs flush cycles on a fixed period.

    A cycle is skipped while the previous batch is still queued; that batch
    is applied first and the following cycle sends newer state anyway.
    Failed batches are logged by the writer and never retried.

    Example usage:
        scheduler = FlushScheduler(writer, markets, registry, interval=0.1, lock=lock)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        writer: PersistenceWriter,
        markets: MarketBook,
        registry: CandleRegistry,
        interval: float = 0.1,
        lock: Optional[asyncio.Lock] = None,
    ):
        self.writer = writer
        self.markets = markets
        self.registry = registry
        self.interval = interval
        self._lock = lock or asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

        # Metrics
        self.cycles = 0
        self.skipped = 0

    @property
    def failures(self) -> int:
        return self.writer.flush_failures

    def build_batch(self) -> FlushBatch:
        """Snapshot current state into bulk-upsert rows"""
        batch = FlushBatch()
        for market in self.markets.snapshot():
            batch.markets.append(market_row(market))
        for builder in self.registry:
            candle = builder.snapshot()
            batch.candlesticks.append(candlestick_row(candle))
            batch.timeframes.append(timeframe_row(builder.timeframe.minutes, candle))
        return batch

    async def flush_once(self, force: bool = False) -> Optional[FlushBatch]:
        """
        Queue one flush cycle.

        Args:
            force: Queue even if an earlier batch is still pending

        Returns:
            The queued batch, or None if the cycle was skipped or dropped
        """
        async with self._lock:
            if self.writer.flush_pending and not force:
                self.skipped += 1
                return None
            batch = self.build_batch()
            if not self.writer.submit(WriteRequest.flush(batch)):
                return None

        self.cycles += 1
        return batch

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.flush_once()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            logger.info(f"Flush scheduler started (every {self.interval * 1000:.0f} ms)")

    async def stop(self, final_flush: bool = True) -> None:
        """Cancel the periodic task and optionally queue one last flush"""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        if final_flush:
            await self.flush_once(force=True)

        logger.info(
            f"Flush scheduler stopped after {self.cycles} cycles "
            f"({self.skipped} skipped, {self.failures} failed batches)"
        )
