"""
Candle Aggregation

Turns the ticker stream into calendar-aligned OHLCV candlesticks for every
configured (instrument, timeframe) pair and keeps the latest quote per
instrument.
"""

from .aligner import SUPPORTED_MINUTES, aligned_start, is_supported
from .builder import CandleBuilder
from .market import MarketBook
from .registry import CandleRegistry, TimeframeKey
from .router import TickRouter

__all__ = [
    "SUPPORTED_MINUTES",
    "aligned_start",
    "is_supported",
    "CandleBuilder",
    "MarketBook",
    "CandleRegistry",
    "TimeframeKey",
    "TickRouter",
]
