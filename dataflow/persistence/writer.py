"""
Persistence Writer

Outbound write queue between the aggregation core and the store. The core
submits requests without awaiting; a single worker task applies them in
submission order, so a flush snapshot taken before a rollover can never land
on top of the closed bar's final write.

Rollover and heartbeat writes are retried with exponential backoff before
being logged and dropped. Flush batches are not retried: the next cycle
resends the then-current state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from schemas.market_data import Candlestick

logger = logging.getLogger(__name__)


class WriteKind(str, Enum):
    ROLLOVER = "rollover"
    HEARTBEAT = "heartbeat"
    FLUSH = "flush"


@dataclass
class FlushBatch:
    """Rows for one flush cycle, one list per bulk request"""
    markets: list = field(default_factory=list)
    candlesticks: list = field(default_factory=list)
    timeframes: list = field(default_factory=list)


@dataclass(frozen=True)
class RolloverWrite:
    """Final state of a closed bar plus the bar that replaced it"""
    minutes: int
    closed: Candlestick
    opened: Candlestick


@dataclass(frozen=True)
class HeartbeatWrite:
    exchange: str
    at: datetime


@dataclass(frozen=True)
class WriteRequest:
    kind: WriteKind
    payload: object

    @classmethod
    def rollover(cls, minutes: int, closed: Candlestick, opened: Candlestick) -> "WriteRequest":
        return cls(WriteKind.ROLLOVER, RolloverWrite(minutes, closed, opened))

    @classmethod
    def heartbeat(cls, exchange: str, at: datetime) -> "WriteRequest":
        return cls(WriteKind.HEARTBEAT, HeartbeatWrite(exchange, at))

    @classmethod
    def flush(cls, batch: FlushBatch) -> "WriteRequest":
        return cls(WriteKind.FLUSH, batch)


class PersistenceWriter:
    """
    Applies queued write requests to the store.

    Features:
    - Non-blocking submit
    - Bounded retries with exponential backoff
    - Graceful shutdown that drains pending requests
    """

    def __init__(
        self,
        store,
        max_queue: int = 0,
        retries: int = 3,
        backoff: float = 0.1,
    ):
        """
        Args:
            store: CandleStore (or any object exposing the same coroutines)
            max_queue: Queue bound, 0 for unbounded
            retries: Extra attempts after the first failure
            backoff: Initial retry delay in seconds, doubled per attempt
        """
        self.store = store
        self.retries = retries
        self.backoff = backoff

        self._queue: asyncio.Queue[WriteRequest] = asyncio.Queue(maxsize=max_queue)
        self._worker: Optional[asyncio.Task] = None
        self._flushes_queued = 0

        # Metrics
        self.written = 0
        self.failed = 0
        self.dropped = 0
        self.flush_failures = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def flush_pending(self) -> bool:
        """True while a submitted flush batch has not been applied yet"""
        return self._flushes_queued > 0

    def submit(self, request: WriteRequest) -> bool:
        """
        Queue a write without waiting for it.

        Returns:
            False if the queue is full and the request was dropped
        """
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Write queue full, dropping {request.kind.value} request")
            return False
        if request.kind is WriteKind.FLUSH:
            self._flushes_queued += 1
        return True

    async def _apply_flush(self, batch: FlushBatch) -> None:
        """Send each bulk batch on its own; one failing batch does not stop the others"""
        for name, rows, send in (
            ("market", batch.markets, self.store.bulk_upsert_markets),
            ("candlestick", batch.candlesticks, self.store.bulk_upsert_candlesticks),
            ("timeframe", batch.timeframes, self.store.bulk_upsert_timeframes),
        ):
            if not rows:
                continue
            try:
                await send(rows)
                logger.debug(f"Flushed {len(rows)} {name} rows")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.flush_failures += 1
                logger.error(f"Failed to flush {name} batch: {e}")
        self.written += 1

    async def _apply(self, request: WriteRequest) -> None:
        if request.kind is WriteKind.ROLLOVER:
            write: RolloverWrite = request.payload
            await self.store.upsert_candlestick(write.closed)
            await self.store.insert_candlestick(write.opened)
            await self.store.update_timeframe_candlestick(write.minutes, write.opened)
        elif request.kind is WriteKind.HEARTBEAT:
            beat: HeartbeatWrite = request.payload
            await self.store.update_heartbeat(beat.exchange, beat.at)
        else:
            raise ValueError(f"Unknown write kind: {request.kind}")

    async def _apply_with_retry(self, request: WriteRequest) -> None:
        delay = self.backoff
        for attempt in range(self.retries + 1):
            try:
                await self._apply(request)
                self.written += 1
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt == self.retries:
                    self.failed += 1
                    logger.error(
                        f"Failed to write {request.kind.value} after "
                        f"{attempt + 1} attempts: {e}"
                    )
                    return
                logger.warning(f"Write {request.kind.value} failed ({e}), retrying in {delay:.2f}s")
                await asyncio.sleep(delay)
                delay *= 2

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                if request.kind is WriteKind.FLUSH:
                    await self._apply_flush(request.payload)
                else:
                    await self._apply_with_retry(request)
            finally:
                if request.kind is WriteKind.FLUSH:
                    self._flushes_queued -= 1
                self._queue.task_done()

    def start(self) -> None:
        """Start the worker task"""
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
            logger.info("Persistence writer started")

    async def join(self) -> None:
        """Wait until every queued request has been applied or given up on"""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain pending writes, then stop the worker"""
        if self._worker is None:
            return

        await self.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

        logger.info(
            f"Persistence writer stopped. "
            f"Written: {self.written}, failed: {self.failed}, dropped: {self.dropped}"
        )
