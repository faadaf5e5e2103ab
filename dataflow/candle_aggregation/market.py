"""
Market Book

Latest-quote cache, one Market per pre-registered instrument.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from schemas.market_data import Instrument, Market

logger = logging.getLogger(__name__)


class MarketBook:
    """Holds the latest bid/ask per instrument for the process lifetime"""

    def __init__(self, instruments: Iterable[Instrument], now: datetime):
        self._markets: Dict[str, Market] = {
            inst.symbol: Market(
                exchange=inst.exchange,
                symbol=inst.symbol,
                market_symbol=inst.market_symbol,
                timestamp=now,
            )
            for inst in instruments
        }

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._markets

    def __len__(self) -> int:
        return len(self._markets)

    def get(self, symbol: str) -> Optional[Market]:
        return self._markets.get(symbol)

    def update_quote(self, symbol: str, bid: float, ask: float, timestamp: datetime) -> bool:
        """
        Overwrite the quote for a known symbol.

        Returns:
            False (and logs) if the symbol was never registered
        """
        market = self._markets.get(symbol)
        if market is None:
            logger.warning(f"Dropping quote for unknown symbol: {symbol}")
            return False

        market.bid = bid
        market.ask = ask
        market.timestamp = timestamp
        return True

    def snapshot(self) -> List[Market]:
        return [replace(m) for m in self._markets.values()]
