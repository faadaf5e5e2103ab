"""
Candle Aggregator

Subscribes to normalized tickers on NATS and feeds them, one at a time, into
the TickRouter. Routing holds the shared state lock so the flush scheduler
never snapshots a half-applied tick.
"""

import asyncio
import logging
from typing import Optional

from dataflow.adapters.nats_client import NatsClient, Topics
from schemas.market_data import Tick, TickParseError

from .router import TickRouter

logger = logging.getLogger(__name__)


class CandleAggregator:
    """Bridges the ticker feed to the aggregation core"""

    def __init__(
        self,
        nats_client: NatsClient,
        router: TickRouter,
        lock: Optional[asyncio.Lock] = None,
    ):
        self.nats = nats_client
        self.router = router
        self._lock = lock or asyncio.Lock()
        self.malformed = 0

    async def _handle_ticker(self, msg) -> None:
        """Handle incoming ticker message"""
        try:
            tick = Tick.from_json(msg.data.decode())
        except (TickParseError, UnicodeDecodeError) as e:
            self.malformed += 1
            logger.error(f"Failed to parse ticker: {e}")
            return

        await self.handle_tick(tick)

    async def handle_tick(self, tick: Tick) -> bool:
        async with self._lock:
            return self.router.route(tick)

    async def start(self) -> None:
        """Start consuming tickers"""
        topic = Topics.all_tickers(self.router.exchange)
        logger.info(
            f"Starting candle aggregator on {topic} for "
            f"{len(self.router.registry)} timeframes"
        )
        await self.nats.subscribe(topic, self._handle_ticker)
        logger.info("Candle aggregator started")

    async def stop(self) -> None:
        """Stop consuming tickers"""
        await self.nats.unsubscribe(Topics.all_tickers(self.router.exchange))
        logger.info(
            f"Candle aggregator stopped. Routed {self.router.routed} ticks, "
            f"dropped {self.router.dropped}, malformed {self.malformed}, "
            f"rollovers {self.router.rollovers}"
        )
