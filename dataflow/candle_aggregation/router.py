"""
Tick Router

Routes each normalized tick to the market book and to every candle builder
registered for its symbol, queueing persistence for bars that close.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Union

from schemas.market_data import Tick
from dataflow.persistence.writer import PersistenceWriter, WriteRequest

from .market import MarketBook
from .registry import CandleRegistry

logger = logging.getLogger(__name__)

HEARTBEAT_THRESHOLD_MS = 5000


class TickRouter:
    """
    Single entry point for ticks into the aggregation core.

    route() never awaits: closed bars and heartbeats are handed to the
    PersistenceWriter queue so a slow store cannot backpressure the feed.
    """

    def __init__(
        self,
        exchange: str,
        markets: MarketBook,
        registry: CandleRegistry,
        writer: PersistenceWriter,
        started_at: datetime,
        heartbeat_threshold_ms: int = HEARTBEAT_THRESHOLD_MS,
        enable_log: bool = False,
    ):
        self.exchange = exchange
        self.markets = markets
        self.registry = registry
        self.writer = writer
        self.heartbeat = started_at
        self.heartbeat_threshold = timedelta(milliseconds=heartbeat_threshold_ms)
        self.enable_log = enable_log

        # Metrics
        self.routed = 0
        self.dropped = 0
        self.rollovers = 0

    def route(self, raw: Union[Tick, dict]) -> bool:
        """
        Apply one tick.

        Args:
            raw: Normalized Tick or a raw feed payload

        Returns:
            False if the tick was dropped for an unknown symbol

        Raises:
            TickParseError: If a raw payload cannot be normalized
        """
        tick = raw if isinstance(raw, Tick) else Tick.from_feed(raw)

        if self.enable_log:
            logger.info(tick.to_json())

        if not self.markets.update_quote(tick.symbol, tick.bid, tick.ask, tick.timestamp):
            self.dropped += 1
            return False

        self._beat(tick.timestamp)

        for builder in self.registry.builders_for(tick.symbol):
            closed = builder.ingest(tick)
            if closed is not None:
                self.rollovers += 1
                self.writer.submit(
                    WriteRequest.rollover(builder.timeframe.minutes, closed, builder.snapshot())
                )
                if self.enable_log:
                    logger.info(f"Closed candlestick: {closed.to_json()}")
            if self.enable_log:
                logger.info(json.dumps(builder.current.to_dict()))

        self.routed += 1
        return True

    def _beat(self, at: datetime) -> None:
        if abs(at - self.heartbeat) > self.heartbeat_threshold:
            self.heartbeat = at
            self.writer.submit(WriteRequest.heartbeat(self.exchange, at))
