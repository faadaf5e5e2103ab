from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from dataflow.candle_aggregation.builder import CandleBuilder
from dataflow.candle_aggregation.market import MarketBook
from dataflow.candle_aggregation.registry import CandleRegistry
from dataflow.candle_aggregation.router import TickRouter
from dataflow.persistence.writer import PersistenceWriter
from schemas.market_data import Candlestick, Instrument, Tick, Timeframe

EXCHANGE = "ftxus"
T0 = datetime(2024, 3, 15, 13, 48, tzinfo=timezone.utc)


class FakeStore:
    """In-memory stand-in for CandleStore that records every call"""

    def __init__(self):
        self.calls = []
        self.persisted = {}
        self.fail = set()
        self.fail_times = {}

    def _record(self, name, *args):
        remaining = self.fail_times.get(name)
        if remaining:
            self.fail_times[name] = remaining - 1
            raise ConnectionError(f"{name} unavailable")
        if name in self.fail:
            raise ConnectionError(f"{name} unavailable")
        self.calls.append((name, args))

    def names(self):
        return [name for name, _ in self.calls]

    async def ensure_exchange(self, name, now):
        self._record("ensure_exchange", name, now)

    async def upsert_instruments(self, instruments):
        self._record("upsert_instruments", list(instruments))

    async def seed_markets(self, markets):
        self._record("seed_markets", list(markets))

    async def seed_timeframes(self, timeframes):
        self._record("seed_timeframes", list(timeframes))

    async def find_candlestick(self, exchange, symbol, timeframe, timestamp) -> Optional[Candlestick]:
        self._record("find_candlestick", exchange, symbol, timeframe, timestamp)
        return self.persisted.get((exchange, symbol, timeframe, timestamp))

    async def bulk_upsert_markets(self, rows):
        self._record("bulk_upsert_markets", rows)

    async def bulk_upsert_candlesticks(self, rows):
        self._record("bulk_upsert_candlesticks", rows)

    async def bulk_upsert_timeframes(self, rows):
        self._record("bulk_upsert_timeframes", rows)

    async def upsert_candlestick(self, candle):
        self._record("upsert_candlestick", candle)

    async def insert_candlestick(self, candle):
        self._record("insert_candlestick", candle)

    async def update_timeframe_candlestick(self, minutes, candle):
        self._record("update_timeframe_candlestick", minutes, candle)

    async def update_heartbeat(self, exchange, at):
        self._record("update_heartbeat", exchange, at)


class RecordingWriter:
    """Collects submitted write requests without a worker"""

    def __init__(self):
        self.requests = []

    def submit(self, request):
        self.requests.append(request)
        return True


def make_tick(symbol="BTC/USD", at=T0, bid=100.0, volume=1.0, ask=None):
    return Tick(
        symbol=symbol,
        timestamp=at,
        bid=bid,
        ask=bid + 0.5 if ask is None else ask,
        bid_volume=volume,
        ask_volume=volume,
    )


def make_timeframe(symbol="BTC/USD", minutes=1, label="1m"):
    return Timeframe(exchange=EXCHANGE, symbol=symbol, minutes=minutes, label=label)


def make_instrument(symbol="BTC/USD"):
    return Instrument(exchange=EXCHANGE, symbol=symbol, market_symbol=symbol)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def writer():
    return RecordingWriter()


@pytest.fixture
def markets():
    return MarketBook([make_instrument("BTC/USD"), make_instrument("ETH/USD")], T0)


@pytest.fixture
def registry():
    registry = CandleRegistry()
    registry.register(CandleBuilder(make_timeframe("BTC/USD", 1, "1m"), T0))
    registry.register(CandleBuilder(make_timeframe("BTC/USD", 5, "5m"), T0 - timedelta(minutes=3)))
    registry.register(CandleBuilder(make_timeframe("ETH/USD", 1, "1m"), T0))
    return registry


@pytest.fixture
def router(markets, registry, writer):
    return TickRouter(
        exchange=EXCHANGE,
        markets=markets,
        registry=registry,
        writer=writer,
        started_at=T0,
    )


@pytest.fixture
def persistence_writer(store):
    return PersistenceWriter(store, retries=2, backoff=0)
