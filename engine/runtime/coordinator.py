"""
Ingestion Coordinator

Owns every long-lived component of the service and their lifecycle:

1. Startup activation: exchange, instruments, markets and timeframes are
   written insert-if-absent, and each timeframe's first bar is aligned and
   seeded from any previously persisted bar at the same start
2. Wiring: MarketBook + CandleRegistry -> TickRouter -> CandleAggregator,
   with the PersistenceWriter and FlushScheduler alongside
3. Shutdown: final flush, writer drain
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dataflow.adapters.nats_client import NatsClient
from dataflow.candle_aggregation.aggregator import CandleAggregator
from dataflow.candle_aggregation.aligner import aligned_start
from dataflow.candle_aggregation.builder import CandleBuilder
from dataflow.candle_aggregation.market import MarketBook
from dataflow.candle_aggregation.registry import CandleRegistry
from dataflow.candle_aggregation.router import TickRouter
from dataflow.persistence.writer import PersistenceWriter
from engine.config.loader import Settings
from engine.scheduler.flush import FlushScheduler

logger = logging.getLogger(__name__)


class IngestionCoordinator:
    """
    Coordinates the ingestion service for one exchange.

    Example usage:
        store = CandleStore(settings.database_url)
        await store.connect()

        coordinator = IngestionCoordinator(settings, store, nats_client)
        await coordinator.start()
        ...
        await coordinator.stop()
    """

    def __init__(self, settings: Settings, store, nats_client: Optional[NatsClient] = None):
        """
        Args:
            settings: Validated service settings
            store: Connected CandleStore
            nats_client: Connected NATS client; None runs without a feed (tests, replay)
        """
        self.settings = settings
        self.store = store
        self.nats = nats_client

        self.instruments = settings.build_instruments()
        self.timeframes = settings.build_timeframes()

        self.lock = asyncio.Lock()
        self.markets: Optional[MarketBook] = None
        self.registry = CandleRegistry()
        self.writer = PersistenceWriter(
            store,
            max_queue=settings.write_queue_size,
            retries=settings.write_retries,
        )
        self.router: Optional[TickRouter] = None
        self.scheduler: Optional[FlushScheduler] = None
        self.aggregator: Optional[CandleAggregator] = None

    async def activate(self, now: Optional[datetime] = None) -> None:
        """
        Build in-memory state and make sure its static records exist in the store.

        Store failures are logged; the affected records simply stay in memory
        until the flush scheduler writes them.
        """
        now = now or datetime.now(timezone.utc)
        exchange = self.settings.exchange

        logger.info(
            f"Activating {len(self.instruments)} instruments, "
            f"{len(self.timeframes)} timeframes on {exchange}"
        )

        self.markets = MarketBook(self.instruments, now)

        for label, write in (
            ("exchange", lambda: self.store.ensure_exchange(exchange, now)),
            ("instruments", lambda: self.store.upsert_instruments(self.instruments)),
            ("markets", lambda: self.store.seed_markets(self.markets.snapshot())),
            ("timeframes", lambda: self.store.seed_timeframes(self.timeframes)),
        ):
            try:
                await write()
            except Exception as e:
                logger.error(f"Failed to seed {label}: {e}")

        tz = self.settings.tz
        for timeframe in self.timeframes:
            start = aligned_start(now, timeframe.minutes, tz)
            seed = None
            try:
                seed = await self.store.find_candlestick(
                    exchange, timeframe.symbol, timeframe.label, start
                )
            except Exception as e:
                logger.error(f"Failed to load {timeframe.symbol} {timeframe.label} bar: {e}")

            self.registry.register(CandleBuilder(timeframe, start, seed))
            logger.debug(
                f"Activated {timeframe.symbol} {timeframe.label} at {start.isoformat()}"
                + (" (seeded)" if seed is not None else "")
            )

        self.router = TickRouter(
            exchange=exchange,
            markets=self.markets,
            registry=self.registry,
            writer=self.writer,
            started_at=now,
            heartbeat_threshold_ms=self.settings.heartbeat_threshold_ms,
            enable_log=self.settings.enable_log,
        )
        self.scheduler = FlushScheduler(
            self.writer,
            self.markets,
            self.registry,
            interval=self.settings.flush_interval,
            lock=self.lock,
        )

    async def start(self, now: Optional[datetime] = None) -> None:
        """Activate state, then start the writer, the flush task and the feed"""
        await self.activate(now)

        self.writer.start()
        self.scheduler.start()

        if self.nats is not None:
            self.aggregator = CandleAggregator(self.nats, self.router, self.lock)
            await self.aggregator.start()

        logger.info(f"Coordinator started for {self.settings.exchange}")

    async def stop(self) -> None:
        """Stop the feed, flush once more and drain pending writes"""
        logger.info(f"Stopping coordinator for {self.settings.exchange}")

        if self.aggregator is not None:
            await self.aggregator.stop()
        if self.scheduler is not None:
            await self.scheduler.stop(final_flush=True)
        await self.writer.stop()

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get coordinator metrics.

        Returns:
            Dictionary with routing, flush and writer statistics
        """
        return {
            "exchange": self.settings.exchange,
            "timeframes": len(self.registry),
            "routed": self.router.routed if self.router else 0,
            "dropped": self.router.dropped if self.router else 0,
            "rollovers": self.router.rollovers if self.router else 0,
            "flush_cycles": self.scheduler.cycles if self.scheduler else 0,
            "flush_failures": self.writer.flush_failures,
            "pending_writes": self.writer.pending,
            "writes_failed": self.writer.failed,
        }
