from datetime import datetime, timedelta, timezone

import pytest

from schemas.market_data import Candlestick, Tick, TickParseError, parse_timestamp

AT = datetime(2024, 3, 15, 13, 47, 23, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value",
    [
        1710510443000,
        1710510443000.0,
        "1710510443000",
        "2024-03-15T13:47:23Z",
        "2024-03-15T15:47:23+02:00",
        datetime(2024, 3, 15, 13, 47, 23),
    ],
)
def test_parse_timestamp_variants(value):
    assert parse_timestamp(value) == AT


def test_parse_timestamp_rejects_other_types():
    with pytest.raises(TickParseError):
        parse_timestamp(None)


def test_tick_from_feed_uses_bid_side():
    tick = Tick.from_feed(
        {"symbol": "BTC/USD", "timestamp": 1710510443000, "bid": "10", "ask": "11",
         "bidVolume": "2", "askVolume": "3"}
    )

    assert tick.price == 10.0
    assert tick.volume == 2.0
    assert tick.ask == 11.0
    assert tick.epoch == 1710510443000


def test_tick_from_feed_accepts_snake_case_and_missing_volume():
    tick = Tick.from_feed({"symbol": "BTC/USD", "timestamp": AT, "bid": 1, "ask": 2, "ask_volume": 4})

    assert tick.bid_volume == 0.0
    assert tick.ask_volume == 4.0


@pytest.mark.parametrize(
    "payload",
    [
        {"timestamp": 1, "bid": 1, "ask": 1},
        {"symbol": "BTC/USD", "timestamp": 1, "bid": "abc", "ask": 1},
        {"symbol": "", "timestamp": 1, "bid": 1, "ask": 1},
        {"symbol": "BTC/USD", "timestamp": "soon", "bid": 1, "ask": 1},
    ],
)
def test_tick_from_feed_rejects_malformed(payload):
    with pytest.raises(TickParseError):
        Tick.from_feed(payload)


def test_tick_from_json_rejects_non_objects():
    with pytest.raises(TickParseError):
        Tick.from_json("[1, 2]")


def test_candlestick_dict_uses_epoch_and_next_timestamp():
    candle = Candlestick(
        exchange="ftxus",
        symbol="BTC/USD",
        timeframe="1m",
        timestamp=AT,
        next_timestamp=AT + timedelta(minutes=1),
        open=1.0,
        high=2.0,
        low=0.5,
        close=1.5,
        volume=3.0,
    )

    data = candle.to_dict()

    assert data["epoch"] == 1710510443000
    assert data["nextTimestamp"] == "2024-03-15T13:48:23+00:00"


@pytest.mark.parametrize("value", [1e20, float("inf"), "inf", float("nan"), "-1e30"])
def test_parse_timestamp_rejects_out_of_range_epochs(value):
    with pytest.raises(TickParseError):
        parse_timestamp(value)


@pytest.mark.parametrize(
    "field, value",
    [
        ("bid", "nan"),
        ("bid", float("inf")),
        ("ask", "-inf"),
        ("bidVolume", float("nan")),
        ("askVolume", "inf"),
    ],
)
def test_tick_from_feed_rejects_non_finite_numbers(field, value):
    payload = {"symbol": "BTC/USD", "timestamp": 1710510443000, "bid": 1, "ask": 2}
    payload[field] = value

    with pytest.raises(TickParseError):
        Tick.from_feed(payload)


def test_tick_from_feed_rejects_out_of_range_timestamp():
    with pytest.raises(TickParseError):
        Tick.from_feed({"symbol": "BTC/USD", "timestamp": 1e20, "bid": 1, "ask": 2})
