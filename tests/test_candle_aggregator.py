"""Unit tests for application.services.candle_aggregator."""

from tradeflow.application.services.candle_aggregator import CandleAggregator, IngestResult
from tradeflow.domain.value_objects.market_events import BarEvent, TickEvent

from conftest import build_candles

SYMBOL = "BTC/USD"


def _bar(ts, close, high=None, low=None, volume=1.0, symbol=SYMBOL):
    return BarEvent(
        symbol=symbol,
        open=close,
        high=close if high is None else high,
        low=close if low is None else low,
        close=close,
        volume=volume,
        timestamp=ts,
    )


def test_first_bar_starts_forming_candle():
    agg = CandleAggregator(capacity=5)
    assert agg.ingest(_bar(0, 100)) is IngestResult.UPDATED
    assert agg.history(SYMBOL) == []
    assert agg.forming(SYMBOL).close == 100
    assert agg.last_price(SYMBOL) == 100


def test_redelivery_with_same_values_is_unchanged():
    agg = CandleAggregator(capacity=5)
    agg.ingest(_bar(0, 100))
    assert agg.ingest(_bar(0, 100)) is IngestResult.UNCHANGED


def test_same_timestamp_updates_in_place():
    agg = CandleAggregator(capacity=5)
    agg.ingest(_bar(0, 100))
    assert agg.ingest(_bar(0, 101, high=102, low=99)) is IngestResult.UPDATED
    assert agg.history(SYMBOL) == []
    forming = agg.forming(SYMBOL)
    assert (forming.high, forming.low, forming.close) == (102, 99, 101)


def test_new_timestamp_closes_previous_bar():
    agg = CandleAggregator(capacity=5)
    agg.ingest(_bar(0, 100))
    agg.ingest(_bar(0, 101))
    assert agg.ingest(_bar(60, 102)) is IngestResult.CLOSED
    history = agg.history(SYMBOL)
    assert len(history) == 1
    assert history[0].timestamp == 0
    assert history[0].close == 101
    assert agg.forming(SYMBOL).timestamp == 60


def test_stale_bars_are_discarded():
    agg = CandleAggregator(capacity=5)
    agg.ingest(_bar(0, 100))
    agg.ingest(_bar(60, 101))
    agg.ingest(_bar(120, 102))

    assert agg.ingest(_bar(60, 999)) is IngestResult.STALE    # == última cerrada
    assert agg.ingest(_bar(30, 999)) is IngestResult.STALE    # < última cerrada
    assert [c.close for c in agg.history(SYMBOL)] == [100, 101]
    assert agg.state.get(SYMBOL).stale_events == 2


def test_buffer_is_bounded_fifo():
    agg = CandleAggregator(capacity=3)
    for i in range(6):
        agg.ingest(_bar(i * 60, 100 + i))

    history = agg.history(SYMBOL)
    assert len(history) == 3
    assert [c.close for c in history] == [102, 103, 104]
    timestamps = [c.timestamp for c in history]
    assert timestamps == sorted(set(timestamps))


def test_tick_only_refreshes_last_price():
    agg = CandleAggregator(capacity=5)
    agg.ingest(_bar(0, 100))
    agg.ingest(_bar(60, 101))
    before = agg.history(SYMBOL)

    agg.update_tick(TickEvent(SYMBOL, 105.5, 0.1, 70))

    assert agg.last_price(SYMBOL) == 105.5
    assert agg.history(SYMBOL) == before
    assert agg.forming(SYMBOL).close == 101


def test_symbols_are_isolated():
    agg = CandleAggregator(capacity=5)
    agg.ingest(_bar(0, 100))
    agg.ingest(_bar(60, 101))
    assert agg.ingest(_bar(0, 50, symbol="ETH/USD")) is IngestResult.UPDATED
    assert agg.history("ETH/USD") == []
    assert len(agg.history(SYMBOL)) == 1


def test_seed_sorts_and_keeps_last_as_forming():
    agg = CandleAggregator(capacity=5)
    candles = build_candles([100, 101, 102, 103])
    shuffled = [candles[2], candles[0], candles[3], candles[1], candles[0]]

    closed = agg.seed(SYMBOL, shuffled)

    assert closed == 3
    assert [c.close for c in agg.history(SYMBOL)] == [100, 101, 102]
    assert agg.forming(SYMBOL).close == 103
    assert agg.last_price(SYMBOL) == 103

    # la vela en formación sigue aceptando updates; lo ya cerrado es stale
    assert agg.ingest(_bar(180, 104, high=104.5)) is IngestResult.UPDATED
    assert agg.ingest(_bar(120, 1)) is IngestResult.STALE
    assert agg.ingest(_bar(240, 105)) is IngestResult.CLOSED


def test_seed_respects_capacity():
    agg = CandleAggregator(capacity=2)
    agg.seed(SYMBOL, build_candles([1, 2, 3, 4, 5]))
    assert [c.close for c in agg.history(SYMBOL)] == [3, 4]
    assert agg.forming(SYMBOL).close == 5
