"""
Candle Builder

Per-(instrument, timeframe) state machine that owns the currently open
candlestick and decides, for every tick, whether to update it in place or
close it and open its successor.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from schemas.market_data import Candlestick, Tick, Timeframe

logger = logging.getLogger(__name__)


class CandleBuilder:
    """
    Builds candlesticks for one Timeframe from incoming ticks.

    Rollover only happens when a tick arrives at or after the open bar's end
    boundary, and it is single-step: the successor always starts at the
    previous end, however many buckets passed without ticks. Ticks older than
    the bar start are applied like any other tick before the end boundary.
    """

    def __init__(
        self,
        timeframe: Timeframe,
        start: datetime,
        seed: Optional[Candlestick] = None,
    ):
        """
        Args:
            timeframe: Timeframe this builder aggregates for
            start: Aligned start of the first bar
            seed: Previously persisted bar for the same start, if any
        """
        self.timeframe = timeframe
        self.duration = timedelta(minutes=timeframe.minutes)
        self._current = Candlestick(
            exchange=timeframe.exchange,
            symbol=timeframe.symbol,
            timeframe=timeframe.label,
            timestamp=start,
            next_timestamp=start + self.duration,
        )
        if seed is not None:
            self._current.open = seed.open
            self._current.high = seed.high
            self._current.low = seed.low
            self._current.close = seed.close
            self._current.volume = seed.volume or 0.0

    @property
    def current(self) -> Candlestick:
        """The open bar. Mutated in place; use snapshot() for a stable copy."""
        return self._current

    def snapshot(self) -> Candlestick:
        return replace(self._current)

    def ingest(self, tick: Tick) -> Optional[Candlestick]:
        """
        Apply a tick to the open bar.

        Returns:
            The closed bar if this tick rolled the timeframe over, else None
        """
        bar = self._current
        price = tick.price

        if tick.timestamp < bar.next_timestamp:
            if bar.open is None:
                bar.open = price
            bar.close = price
            bar.high = price if bar.high is None else max(bar.high, price)
            bar.low = price if bar.low is None else min(bar.low, price)
            bar.volume += tick.volume
            bar.tick_count += 1
            return None

        start = bar.next_timestamp
        self._current = Candlestick(
            exchange=bar.exchange,
            symbol=bar.symbol,
            timeframe=bar.timeframe,
            timestamp=start,
            next_timestamp=start + self.duration,
            open=price,
            high=price,
            low=price,
            close=price,
            volume=tick.volume,
            tick_count=1,
        )
        logger.debug(
            f"Rolled {bar.symbol} {bar.timeframe}: "
            f"{bar.timestamp.isoformat()} -> {start.isoformat()}"
        )
        return bar
