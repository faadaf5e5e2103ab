import pytest

from dataflow.candle_aggregation.builder import CandleBuilder
from dataflow.candle_aggregation.registry import CandleRegistry, TimeframeKey
from tests.conftest import T0, make_timeframe


def test_register_and_reverse_index():
    registry = CandleRegistry()
    one = CandleBuilder(make_timeframe("BTC/USD", 1, "1m"), T0)
    five = CandleBuilder(make_timeframe("BTC/USD", 5, "5m"), T0)
    eth = CandleBuilder(make_timeframe("ETH/USD", 1, "1m"), T0)

    for builder in (one, five, eth):
        registry.register(builder)

    assert len(registry) == 3
    assert registry.keys_for("BTC/USD") == [TimeframeKey("BTC/USD", "1m"), TimeframeKey("BTC/USD", "5m")]
    assert registry.builders_for("BTC/USD") == [one, five]
    assert registry.get(TimeframeKey("ETH/USD", "1m")) is eth
    assert registry.builders_for("SOL/USD") == []


def test_keys_do_not_collide_on_concatenation():
    registry = CandleRegistry()
    registry.register(CandleBuilder(make_timeframe("A-B", 1, "1m"), T0))
    registry.register(CandleBuilder(make_timeframe("A", 1, "B-1m"), T0))

    assert len(registry) == 2
    assert TimeframeKey("A-B", "1m") in registry
    assert TimeframeKey("A", "B-1m") in registry


def test_duplicate_registration_is_rejected():
    registry = CandleRegistry()
    registry.register(CandleBuilder(make_timeframe(), T0))

    with pytest.raises(ValueError, match="already registered"):
        registry.register(CandleBuilder(make_timeframe(), T0))
