from datetime import datetime, timedelta, timezone

from dataflow.candle_aggregation.registry import TimeframeKey
from engine.config.loader import Settings
from engine.runtime.coordinator import IngestionCoordinator
from schemas.market_data import Candlestick
from tests.conftest import make_tick

NOW = datetime(2024, 3, 15, 13, 47, 23, tzinfo=timezone.utc)


def settings(**env):
    base = {"INSTRUMENTS": "BTC/USD,ETH/USD", "TIMEFRAMES": "1,15", "TIMEFRAME_NAMES": "1m,15m"}
    base.update(env)
    return Settings.from_env(base)


async def test_activation_seeds_static_records_and_aligns_bars(store):
    coordinator = IngestionCoordinator(settings(), store)

    await coordinator.activate(NOW)

    names = store.names()
    assert names[:4] == ["ensure_exchange", "upsert_instruments", "seed_markets", "seed_timeframes"]
    assert names.count("find_candlestick") == 4

    one = coordinator.registry.get(TimeframeKey("BTC/USD", "1m")).current
    fifteen = coordinator.registry.get(TimeframeKey("BTC/USD", "15m")).current
    assert one.timestamp == datetime(2024, 3, 15, 13, 48, tzinfo=timezone.utc)
    assert fifteen.timestamp == datetime(2024, 3, 15, 13, 45, tzinfo=timezone.utc)
    assert fifteen.next_timestamp == datetime(2024, 3, 15, 14, 0, tzinfo=timezone.utc)
    assert fifteen.is_empty


async def test_activation_seeds_bar_from_persisted_candlestick(store):
    start = datetime(2024, 3, 15, 13, 45, tzinfo=timezone.utc)
    store.persisted[("ftxus", "ETH/USD", "15m", start)] = Candlestick(
        exchange="ftxus",
        symbol="ETH/USD",
        timeframe="15m",
        timestamp=start,
        next_timestamp=start + timedelta(minutes=15),
        open=3000.0,
        high=3010.0,
        low=2990.0,
        close=3005.0,
        volume=12.0,
    )
    coordinator = IngestionCoordinator(settings(), store)

    await coordinator.activate(NOW)

    bar = coordinator.registry.get(TimeframeKey("ETH/USD", "15m")).current
    assert (bar.open, bar.high, bar.low, bar.close, bar.volume) == (3000.0, 3010.0, 2990.0, 3005.0, 12.0)


async def test_store_failures_during_activation_are_tolerated(store, caplog):
    store.fail.update({"upsert_instruments", "find_candlestick"})
    coordinator = IngestionCoordinator(settings(), store)

    await coordinator.activate(NOW)

    assert len(coordinator.registry) == 4
    assert "Failed to seed instruments" in caplog.text
    assert "Failed to load BTC/USD 1m bar" in caplog.text


async def test_alignment_zone_comes_from_settings(store):
    coordinator = IngestionCoordinator(
        settings(TIMEFRAMES="60", TIMEFRAME_NAMES="1h", ALIGN_TIMEZONE="Asia/Kolkata"), store
    )

    await coordinator.activate(NOW)

    bar = coordinator.registry.get(TimeframeKey("BTC/USD", "1h")).current
    assert bar.timestamp == datetime(2024, 3, 15, 13, 30, tzinfo=timezone.utc)


async def test_run_without_feed_routes_and_persists_on_stop(store):
    coordinator = IngestionCoordinator(settings(FLUSH_INTERVAL_MS="60000"), store)
    await coordinator.start(NOW)

    bar_start = datetime(2024, 3, 15, 13, 48, tzinfo=timezone.utc)
    coordinator.router.route(make_tick(at=bar_start + timedelta(seconds=5), bid=100))
    coordinator.router.route(make_tick(at=bar_start + timedelta(seconds=65), bid=101))

    await coordinator.stop()

    names = store.names()
    assert "upsert_candlestick" in names
    assert "insert_candlestick" in names
    assert "bulk_upsert_candlesticks" in names

    metrics = coordinator.get_metrics()
    assert metrics["routed"] == 2
    assert metrics["rollovers"] == 1
    assert metrics["pending_writes"] == 0
    assert metrics["flush_cycles"] == 1
