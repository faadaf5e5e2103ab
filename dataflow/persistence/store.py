"""
PostgreSQL Candle Store

asyncpg-backed persistence for the ingestion service. Every write is an
upsert keyed the way the records are identified:

- exchange     -> (name)
- instrument   -> (exchange, symbol, market_symbol), never overwritten
- market       -> (exchange, symbol)
- timeframe    -> (exchange, symbol, timeframe), holds a JSONB copy of the open bar
- candlestick  -> (exchange, symbol, timeframe, timestamp)
"""

import json
import logging
from datetime import datetime
from typing import Iterable, Optional

import asyncpg

from schemas.market_data import Candlestick, Instrument, Market, Timeframe, to_epoch_ms

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS exchange (
    name        TEXT PRIMARY KEY,
    heartbeat   BIGINT NOT NULL,
    timestamp   TIMESTAMPTZ,
    epoch       BIGINT
);

CREATE TABLE IF NOT EXISTS instrument (
    exchange            TEXT NOT NULL,
    symbol              TEXT NOT NULL,
    market_symbol       TEXT NOT NULL,
    type                TEXT NOT NULL,
    price_precision     DOUBLE PRECISION,
    quantity_precision  DOUBLE PRECISION,
    minimum_notional    DOUBLE PRECISION,
    maximum_notional    DOUBLE PRECISION,
    minimum_quantity    DOUBLE PRECISION,
    maximum_quantity    DOUBLE PRECISION,
    PRIMARY KEY (exchange, symbol, market_symbol)
);

CREATE TABLE IF NOT EXISTS market (
    exchange        TEXT NOT NULL,
    symbol          TEXT NOT NULL,
    market_symbol   TEXT NOT NULL,
    bid             DOUBLE PRECISION NOT NULL,
    ask             DOUBLE PRECISION NOT NULL,
    timestamp       TIMESTAMPTZ NOT NULL,
    epoch           BIGINT NOT NULL,
    PRIMARY KEY (exchange, symbol)
);

CREATE TABLE IF NOT EXISTS timeframe (
    exchange        TEXT NOT NULL,
    symbol          TEXT NOT NULL,
    timeframe       TEXT NOT NULL,
    minutes         INTEGER NOT NULL,
    candlestick     JSONB,
    PRIMARY KEY (exchange, symbol, timeframe)
);

CREATE TABLE IF NOT EXISTS candlestick (
    exchange        TEXT NOT NULL,
    symbol          TEXT NOT NULL,
    timeframe       TEXT NOT NULL,
    timestamp       TIMESTAMPTZ NOT NULL,
    epoch           BIGINT NOT NULL,
    next_timestamp  TIMESTAMPTZ NOT NULL,
    open            DOUBLE PRECISION,
    high            DOUBLE PRECISION,
    low             DOUBLE PRECISION,
    close           DOUBLE PRECISION,
    volume          DOUBLE PRECISION NOT NULL DEFAULT 0,
    PRIMARY KEY (exchange, symbol, timeframe, timestamp)
);
"""

UPSERT_CANDLESTICK = """
    INSERT INTO candlestick
        (exchange, symbol, timeframe, timestamp, epoch, next_timestamp,
         open, high, low, close, volume)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
    ON CONFLICT (exchange, symbol, timeframe, timestamp) DO UPDATE SET
        open = COALESCE(candlestick.open, EXCLUDED.open),
        high = EXCLUDED.high,
        low = EXCLUDED.low,
        close = EXCLUDED.close,
        volume = EXCLUDED.volume
"""

UPSERT_TIMEFRAME_CANDLESTICK = """
    INSERT INTO timeframe (exchange, symbol, timeframe, minutes, candlestick)
    VALUES ($1, $2, $3, $4, $5::jsonb)
    ON CONFLICT (exchange, symbol, timeframe) DO UPDATE SET
        candlestick = EXCLUDED.candlestick
"""


def candlestick_row(candle: Candlestick) -> tuple:
    return (
        candle.exchange,
        candle.symbol,
        candle.timeframe,
        candle.timestamp,
        candle.epoch,
        candle.next_timestamp,
        candle.open,
        candle.high,
        candle.low,
        candle.close,
        candle.volume,
    )


def market_row(market: Market) -> tuple:
    return (
        market.exchange,
        market.symbol,
        market.market_symbol,
        market.bid,
        market.ask,
        market.timestamp,
        market.epoch,
    )


def timeframe_row(minutes: int, candle: Candlestick) -> tuple:
    return (
        candle.exchange,
        candle.symbol,
        candle.timeframe,
        minutes,
        candle.to_json(),
    )


def instrument_row(instrument: Instrument) -> tuple:
    return (
        instrument.exchange,
        instrument.symbol,
        instrument.market_symbol,
        instrument.type.value,
        instrument.price_precision,
        instrument.quantity_precision,
        instrument.minimum_notional,
        instrument.maximum_notional,
        instrument.minimum_quantity,
        instrument.maximum_quantity,
    )


class CandleStore:
    """
    Persists market state and candlesticks to PostgreSQL.

    Features:
    - Connection pooling
    - Batch upserts with executemany
    - Insert-if-absent seeding of static records
    """

    def __init__(self, db_url: str, min_size: int = 2, max_size: int = 10):
        self.db_url = db_url
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Connect to PostgreSQL"""
        logger.info("Connecting to PostgreSQL...")

        self._pool = await asyncpg.create_pool(
            self.db_url,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=60,
        )

        logger.info("Connected to PostgreSQL")

    async def close(self) -> None:
        """Close database connection"""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL connection closed")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("CandleStore not connected")
        return self._pool

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA)

    async def ensure_exchange(self, name: str, now: datetime) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO exchange (name, heartbeat, timestamp, epoch)
                VALUES ($1, $2, $3, $2)
                ON CONFLICT (name) DO NOTHING
                """,
                name,
                to_epoch_ms(now),
                now,
            )

    async def upsert_instruments(self, instruments: Iterable[Instrument]) -> None:
        """Insert instruments that do not exist yet; existing rows are left untouched"""
        async with self.pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO instrument
                    (exchange, symbol, market_symbol, type, price_precision,
                     quantity_precision, minimum_notional, maximum_notional,
                     minimum_quantity, maximum_quantity)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                ON CONFLICT (exchange, symbol, market_symbol) DO NOTHING
                """,
                [instrument_row(i) for i in instruments],
            )

    async def seed_markets(self, markets: Iterable[Market]) -> None:
        async with self.pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO market (exchange, symbol, market_symbol, bid, ask, timestamp, epoch)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (exchange, symbol) DO NOTHING
                """,
                [market_row(m) for m in markets],
            )

    async def seed_timeframes(self, timeframes: Iterable[Timeframe]) -> None:
        async with self.pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO timeframe (exchange, symbol, timeframe, minutes)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (exchange, symbol, timeframe) DO NOTHING
                """,
                [(tf.exchange, tf.symbol, tf.label, tf.minutes) for tf in timeframes],
            )

    async def find_candlestick(
        self, exchange: str, symbol: str, timeframe: str, timestamp: datetime
    ) -> Optional[Candlestick]:
        """Previously persisted bar starting at `timestamp`, if any"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT exchange, symbol, timeframe, timestamp, next_timestamp,
                       open, high, low, close, volume
                FROM candlestick
                WHERE exchange = $1 AND symbol = $2 AND timeframe = $3 AND timestamp = $4
                """,
                exchange,
                symbol,
                timeframe,
                timestamp,
            )
        if row is None:
            return None
        return Candlestick(
            exchange=row["exchange"],
            symbol=row["symbol"],
            timeframe=row["timeframe"],
            timestamp=row["timestamp"],
            next_timestamp=row["next_timestamp"],
            open=row["open"],
            high=row["high"],
            low=row["low"],
            close=row["close"],
            volume=row["volume"],
        )

    async def bulk_upsert_markets(self, rows: list[tuple]) -> None:
        async with self.pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO market (exchange, symbol, market_symbol, bid, ask, timestamp, epoch)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (exchange, symbol) DO UPDATE SET
                    bid = EXCLUDED.bid,
                    ask = EXCLUDED.ask,
                    timestamp = EXCLUDED.timestamp,
                    epoch = EXCLUDED.epoch
                """,
                rows,
            )

    async def bulk_upsert_candlesticks(self, rows: list[tuple]) -> None:
        async with self.pool.acquire() as conn:
            await conn.executemany(UPSERT_CANDLESTICK, rows)

    async def bulk_upsert_timeframes(self, rows: list[tuple]) -> None:
        async with self.pool.acquire() as conn:
            await conn.executemany(UPSERT_TIMEFRAME_CANDLESTICK, rows)

    async def upsert_candlestick(self, candle: Candlestick) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(UPSERT_CANDLESTICK, *candlestick_row(candle))

    async def insert_candlestick(self, candle: Candlestick) -> None:
        """Insert a freshly opened bar; an existing row for the same start is kept"""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO candlestick
                    (exchange, symbol, timeframe, timestamp, epoch, next_timestamp,
                     open, high, low, close, volume)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                ON CONFLICT (exchange, symbol, timeframe, timestamp) DO NOTHING
                """,
                *candlestick_row(candle),
            )

    async def update_timeframe_candlestick(self, minutes: int, candle: Candlestick) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(UPSERT_TIMEFRAME_CANDLESTICK, *timeframe_row(minutes, candle))

    async def update_heartbeat(self, exchange: str, at: datetime) -> None:
        epoch = to_epoch_ms(at)
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO exchange (name, heartbeat, timestamp, epoch)
                VALUES ($1, $2, $3, $2)
                ON CONFLICT (name) DO UPDATE SET
                    heartbeat = EXCLUDED.heartbeat,
                    timestamp = EXCLUDED.timestamp,
                    epoch = EXCLUDED.epoch
                """,
                exchange,
                epoch,
                at,
            )
