"""
Ingestion Service - Typed Message Catalog

All records flowing through the service use strongly-typed schemas.
This package provides the core data types for tickers, quotes and candlesticks.
"""

from schemas.market_data import (
    Candlestick,
    Instrument,
    InstrumentType,
    Market,
    Tick,
    TickParseError,
    Timeframe,
)

__all__ = [
    "Candlestick",
    "Instrument",
    "InstrumentType",
    "Market",
    "Tick",
    "TickParseError",
    "Timeframe",
]
