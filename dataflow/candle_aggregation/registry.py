"""
Candle Registry

Owning registry of CandleBuilder instances keyed by (symbol, timeframe label),
with a reverse index from symbol to its timeframe keys.
"""

from collections import defaultdict
from typing import Dict, Iterator, List, NamedTuple
import logging

from .builder import CandleBuilder

logger = logging.getLogger(__name__)


class TimeframeKey(NamedTuple):
    symbol: str
    label: str


class CandleRegistry:
    """
    Registry of active candle builders.

    The registry is the only owner of builder state; routers and the flush
    scheduler look builders up here instead of holding their own copies.

    Example usage:
        registry = CandleRegistry()
        registry.register(CandleBuilder(timeframe, start))

        for builder in registry.builders_for("BTC/USD"):
            closed = builder.ingest(tick)
    """

    def __init__(self):
        self._builders: Dict[TimeframeKey, CandleBuilder] = {}
        self._by_symbol: Dict[str, List[TimeframeKey]] = defaultdict(list)

    def register(self, builder: CandleBuilder) -> TimeframeKey:
        """
        Register a builder under its timeframe key.

        Raises:
            ValueError: If the key is already registered
        """
        key = TimeframeKey(builder.timeframe.symbol, builder.timeframe.label)
        if key in self._builders:
            raise ValueError(f"Timeframe already registered: {key.symbol} {key.label}")

        self._builders[key] = builder
        self._by_symbol[key.symbol].append(key)
        logger.debug(f"Registered builder: {key.symbol} {key.label}")
        return key

    def get(self, key: TimeframeKey) -> CandleBuilder:
        return self._builders[key]

    def keys_for(self, symbol: str) -> List[TimeframeKey]:
        return list(self._by_symbol.get(symbol, ()))

    def builders_for(self, symbol: str) -> List[CandleBuilder]:
        return [self._builders[key] for key in self._by_symbol.get(symbol, ())]

    def __iter__(self) -> Iterator[CandleBuilder]:
        return iter(list(self._builders.values()))

    def __len__(self) -> int:
        return len(self._builders)

    def __contains__(self, key: TimeframeKey) -> bool:
        return key in self._builders
