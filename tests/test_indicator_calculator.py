"""Unit tests for domain.services.indicator_calculator."""

import pytest

from tradeflow.domain.entities.candle import Candle
from tradeflow.domain.services.indicator_calculator import IndicatorCalculator as calc


def _candle(ts, high, low, close, volume=1.0):
    return Candle("BTC/USD", ts, close, high, low, close, volume)


def test_rsi_wilder_fixture():
    # cambios [+1, -1, +2, -1]; semilla 1 / (1/3), un paso de Wilder → RS = 1.2
    closes = [10, 11, 10, 12, 11]
    assert calc.rsi(closes, 3) == pytest.approx(600 / 11, abs=1e-6)


def test_rsi_wilder_default_period_fixture():
    # 14 cambios de semilla: ganancias 11/14, pérdidas 7/14
    # luego +3 y -2 → avg_gain 2405/2744, avg_loss 1575/2744
    closes = [100, 102, 101, 102, 101, 103, 102, 103, 102, 104, 103, 104, 103, 105, 104, 107, 105]
    assert calc.rsi(closes[:15], 14) == pytest.approx(550 / 9, abs=1e-6)
    assert calc.rsi(closes, 14) == pytest.approx(12025 / 199, abs=1e-6)


def test_rsi_all_gains_is_100():
    assert calc.rsi([1, 2, 3, 4, 5, 6], 3) == 100.0


def test_rsi_all_losses_is_0():
    assert calc.rsi([6, 5, 4, 3, 2, 1], 3) == pytest.approx(0.0)


def test_rsi_insufficient_data():
    assert calc.rsi([1, 2, 3], 3) == 0.0


def test_rsi_stays_in_range():
    closes = [100, 103, 99, 104, 98, 101, 97, 105, 102, 100, 96, 99]
    value = calc.rsi(closes, 5)
    assert 0.0 <= value <= 100.0


def test_ema_seeded_with_sma():
    assert calc.ema([1, 2, 3, 4, 5], 3) == pytest.approx([2, 2.5, 3.25, 4.125])


def test_ema_short_series_is_empty():
    assert calc.ema([1, 2], 3) == []


def test_macd_zero_without_enough_closes():
    reading = calc.macd([float(i) for i in range(7)], 3, 5, 3)
    assert reading.value == 0
    assert reading.signal == 0
    assert reading.histogram == 0


def test_macd_rising_series_is_positive():
    closes = [float(i) for i in range(1, 31)]
    reading = calc.macd(closes, 3, 6, 3)
    assert reading.value > 0
    assert reading.short_ema > reading.long_ema
    assert reading.histogram == pytest.approx(reading.value - reading.signal)


def test_atr_is_simple_mean_of_true_ranges():
    candles = [
        _candle(0, 10.5, 9.5, 10),
        _candle(60, 12, 9, 11),     # TR = 3
        _candle(120, 11, 10, 10.5),  # TR = max(1, 0, 1) = 1
    ]
    assert calc.atr(candles, 2) == pytest.approx(2.0)
    # menos velas que period + 1 → promedio de los disponibles
    assert calc.atr(candles, 5) == pytest.approx(2.0)
    assert calc.atr(candles[:1], 5) == 0.0


def test_sma():
    assert calc.sma([1, 2, 3, 4], 2) == pytest.approx(3.5)
    assert calc.sma([1], 2) is None


def test_volume_spike():
    assert calc.volume_spike([1, 1, 1, 10], 4, 2.0) is True
    assert calc.volume_spike([1, 1, 1, 1], 4, 2.0) is False
    assert calc.volume_spike([], 4, 2.0) is False


def test_volatility_spike():
    flat = [_candle(i * 60, 10.5, 9.5, 10) for i in range(3)]
    wide = _candle(180, 12.5, 7.5, 10)
    assert calc.volatility_spike(flat + [wide], 4, 1.5) is True
    assert calc.volatility_spike(flat, 3, 1.5) is False


def test_volatility_spike_zero_range():
    candles = [_candle(i * 60, 10, 10, 10) for i in range(4)]
    assert calc.volatility_spike(candles, 4, 1.0) is False
