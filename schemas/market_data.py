"""
Market Data Types

Core market data types used throughout the ingestion service.
These types are used for NATS messaging and PostgreSQL persistence.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import json
import math


class TickParseError(ValueError):
    """Raised when a feed message cannot be normalized into a Tick"""


class InstrumentType(str, Enum):
    FOREX = "Forex"
    CRYPTO = "Crypto"
    STOCK = "STOCK"


def parse_timestamp(value) -> datetime:
    """
    Normalize a feed timestamp to an aware UTC datetime.

    Accepts epoch milliseconds (int/float/numeric string), ISO-8601 strings
    (with or without a trailing "Z") and datetime objects. Naive datetimes
    are taken to be UTC.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            ts = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise TickParseError(f"Timestamp out of range: {value!r}") from e
    elif isinstance(value, str):
        text = value.strip()
        try:
            epoch = float(text)
        except ValueError:
            try:
                ts = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError as e:
                raise TickParseError(f"Unsupported timestamp: {value!r}") from e
        else:
            return parse_timestamp(epoch)
    else:
        raise TickParseError(f"Unsupported timestamp: {value!r}")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def to_epoch_ms(ts: datetime) -> int:
    return int(round(ts.timestamp() * 1000))


@dataclass(frozen=True)
class Tick:
    """
    Normalized ticker event from the exchange feed.

    Only the bid side is aggregated into candlesticks; ask is kept for the
    market quote.
    """
    symbol: str
    timestamp: datetime
    bid: float
    ask: float
    bid_volume: float = 0.0
    ask_volume: float = 0.0

    @property
    def price(self) -> float:
        return self.bid

    @property
    def volume(self) -> float:
        return self.bid_volume

    @property
    def epoch(self) -> int:
        return to_epoch_ms(self.timestamp)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "epoch": self.epoch,
            "bid": self.bid,
            "ask": self.ask,
            "bidVolume": self.bid_volume,
            "askVolume": self.ask_volume,
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_feed(cls, data: dict) -> "Tick":
        """
        Create Tick from a raw feed payload.

        Accepts both camelCase (``bidVolume``) and snake_case (``bid_volume``)
        volume keys. Missing volumes count as zero.

        Raises:
            TickParseError: If symbol, timestamp, bid or ask are missing or invalid
        """
        try:
            symbol = data["symbol"]
            timestamp = parse_timestamp(data["timestamp"])
            bid = float(data["bid"])
            ask = float(data["ask"])
            bid_volume = float(data.get("bidVolume", data.get("bid_volume")) or 0.0)
            ask_volume = float(data.get("askVolume", data.get("ask_volume")) or 0.0)
        except (KeyError, TypeError, ValueError) as e:
            raise TickParseError(f"Malformed ticker payload: {e}") from e

        if not isinstance(symbol, str) or not symbol:
            raise TickParseError("Malformed ticker payload: empty symbol")
        for name, number in (
            ("bid", bid),
            ("ask", ask),
            ("bidVolume", bid_volume),
            ("askVolume", ask_volume),
        ):
            if not math.isfinite(number):
                raise TickParseError(f"Malformed ticker payload: non-finite {name}")

        return cls(
            symbol=symbol,
            timestamp=timestamp,
            bid=bid,
            ask=ask,
            bid_volume=bid_volume,
            ask_volume=ask_volume,
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Tick":
        """Deserialize from JSON string"""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise TickParseError(f"Invalid ticker JSON: {e}") from e
        if not isinstance(data, dict):
            raise TickParseError("Ticker JSON must be an object")
        return cls.from_feed(data)


@dataclass(frozen=True)
class Instrument:
    """Tradeable symbol and its precision/bounds metadata"""
    exchange: str
    symbol: str
    market_symbol: str
    type: InstrumentType = InstrumentType.CRYPTO
    price_precision: float = 0.00001
    quantity_precision: float = 1
    minimum_notional: Optional[float] = None
    maximum_notional: Optional[float] = None
    minimum_quantity: Optional[float] = 10000
    maximum_quantity: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "marketSymbol": self.market_symbol,
            "type": self.type.value,
            "pricePrecision": self.price_precision,
            "quantityPrecision": self.quantity_precision,
            "minimumNotional": self.minimum_notional,
            "maximumNotional": self.maximum_notional,
            "minimumQuantity": self.minimum_quantity,
            "maximumQuantity": self.maximum_quantity,
        }


@dataclass
class Market:
    """Latest known quote for an instrument"""
    exchange: str
    symbol: str
    market_symbol: str
    timestamp: datetime
    bid: float = 0.0
    ask: float = 0.0

    @property
    def epoch(self) -> int:
        return to_epoch_ms(self.timestamp)

    def to_dict(self) -> dict:
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "marketSymbol": self.market_symbol,
            "bid": self.bid,
            "ask": self.ask,
            "timestamp": self.timestamp.isoformat(),
            "epoch": self.epoch,
        }


@dataclass(frozen=True)
class Timeframe:
    """One aggregation cadence for one instrument, e.g. ("BTC/USD", 5, "5m")"""
    exchange: str
    symbol: str
    minutes: int
    label: str

    def to_dict(self) -> dict:
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "timeframe": self.label,
            "minutes": self.minutes,
        }


@dataclass
class Candlestick:
    """
    OHLCV bar for [timestamp, next_timestamp).

    open/high/low/close stay None until the bar has seen a price, either
    from a tick or from a previously persisted bar it was seeded with.
    """
    exchange: str
    symbol: str
    timeframe: str
    timestamp: datetime
    next_timestamp: datetime
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume: float = 0.0
    tick_count: int = field(default=0, compare=False)

    @property
    def epoch(self) -> int:
        return to_epoch_ms(self.timestamp)

    @property
    def is_empty(self) -> bool:
        return self.open is None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "timestamp": self.timestamp.isoformat(),
            "epoch": self.epoch,
            "nextTimestamp": self.next_timestamp.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())
