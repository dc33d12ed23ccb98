"""Shared fixtures: config/snapshot builders, fakes for market data and orders."""

from dataclasses import replace
from typing import Dict, List

import pytest

from tradeflow.application.ports.market_data_provider import IMarketDataProvider
from tradeflow.application.ports.order_executor import IOrderExecutor
from tradeflow.domain.entities.candle import Candle
from tradeflow.domain.entities.portfolio import Portfolio
from tradeflow.domain.entities.strategy_config import MEAN_REVERSION
from tradeflow.domain.exceptions.domain_errors import OrderPlacementError, TransportError
from tradeflow.domain.value_objects.indicator_snapshot import (
    IndicatorSnapshot,
    MacdReading,
    RsiReading,
)
from tradeflow.infrastructure.persistence.repositories import InMemoryTradeRepository
from tradeflow.shared.retry import RetryPolicy


class FrozenClock:
    """Reloj manual en epoch-segundos."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += minutes * 60


class FakeMarketData(IMarketDataProvider):
    def __init__(self, candles=None, balance: float = 10_000.0) -> None:
        self.candles: Dict[str, List[Candle]] = candles or {}
        self.balance = balance
        self.failing_symbols = set()
        self.failing_configs = set()
        self.history_calls: List[tuple] = []

    async def get_historical_candles(self, symbol, interval, limit=100):
        self.history_calls.append((symbol, interval, limit))
        if symbol in self.failing_symbols:
            raise TransportError(f"sin histórico para {symbol}")
        return list(self.candles.get(symbol, []))[-limit:]

    async def get_starting_portfolio(self, config):
        if config.name in self.failing_configs:
            raise TransportError(f"sin balance para {config.name}")
        return Portfolio(self.balance)


class FakeOrderExecutor(IOrderExecutor):
    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.failing_sides = set()
        self.errors = {}

    async def submit_market_order(self, symbol, side, quantity):
        self.calls.append((symbol, side, quantity))
        if side in self.errors:
            raise self.errors[side]
        if side in self.failing_sides:
            raise OrderPlacementError("rechazada", symbol=symbol, side=side)
        return {"txid": [f"T{len(self.calls)}"]}


def build_candles(closes, symbol="BTC/USD", start=0.0, step=60.0, volume=1.0):
    """Velas con rango fijo de ±0.5 alrededor de cada cierre."""
    return [
        Candle(
            symbol=symbol,
            timestamp=start + i * step,
            open=close,
            high=close + 0.5,
            low=close - 0.5,
            close=close,
            volume=volume,
        )
        for i, close in enumerate(closes)
    ]


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def repo():
    return InMemoryTradeRepository()


@pytest.fixture
def market_data():
    return FakeMarketData()


@pytest.fixture
def orders():
    return FakeOrderExecutor()


@pytest.fixture
def fast_retry():
    return RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter_ratio=0.0)


@pytest.fixture
def make_config():
    def _make(base=MEAN_REVERSION, **overrides):
        return replace(base, **overrides)

    return _make


@pytest.fixture
def small_config(make_config):
    """Ventanas cortas y entrada siempre aceptada con indicadores listos."""
    return make_config(
        rsi_period=3,
        short_ema_period=2,
        long_ema_period=4,
        signal_ema_period=2,
        volatility_lookback=3,
        volume_spike_bar_count=3,
        minimum_required_candles=5,
        macd_cross_needed=False,
        volume_spike_required=False,
        rsi_threshold=101,
        min_hold_time_minutes=0,
    )


@pytest.fixture
def make_snapshot():
    def _make(
        rsi=50.0,
        rsi_previous=50.0,
        macd=0.0,
        signal=0.0,
        histogram=None,
        short_ema=0.0,
        long_ema=0.0,
        atr=0.0,
        volume_spike=False,
        volatility_spike=False,
    ):
        return IndicatorSnapshot(
            rsi=RsiReading(current=rsi, previous=rsi_previous),
            macd=MacdReading(
                value=macd,
                signal=signal,
                histogram=macd - signal if histogram is None else histogram,
                short_ema=short_ema,
                long_ema=long_ema,
            ),
            atr=atr,
            volume_spike=volume_spike,
            volatility_spike=volatility_spike,
        )

    return _make


@pytest.fixture
def entry_snapshot(make_snapshot):
    """Snapshot que dispara una entrada de mean reversion con el preset por defecto."""
    return make_snapshot(rsi=20.0, macd=1.0, signal=0.5, volume_spike=True)
