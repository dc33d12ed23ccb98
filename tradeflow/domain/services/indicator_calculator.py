"""
TradeFlow – Domain Service: Indicator Calculator
================================================
Cálculos de indicadores técnicos puros (sin estado, sin I/O).

Todas las ventanas se toman de la COLA de la serie; ningún cálculo mira
hacia adelante. Las series van ordenadas de la más antigua a la más nueva.

INDICADORES:
- RSI   → Wilder (semilla = media simple de los primeros `period` cambios)
- EMA   → semilla = SMA de los primeros `period` valores
- MACD  → EMA corta − EMA larga alineadas por la cola, señal = EMA(MACD)
- ATR   → media SIMPLE de los true ranges (no suavizado Wilder)
- SMA   → media simple de los últimos `period` cierres
- Spikes de volumen / volatilidad → flags booleanos
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from tradeflow.domain.entities.candle import Candle
from tradeflow.domain.value_objects.indicator_snapshot import MacdReading


class IndicatorCalculator:
    """
    Calculadora de indicadores técnicos puros.

    RESPONSABILIDAD:
    Implementar las fórmulas. NO mantiene estado.
    El estado por símbolo (snapshots, umbral de velas mínimas) vive en
    application/services/indicator_engine.py.
    """

    @staticmethod
    def rsi(closes: Sequence[float], period: int) -> float:
        """
        RSI con suavizado de Wilder.

        FÓRMULA:
            avg_0 = media simple de los primeros `period` cambios
            avg_t = (avg_{t-1} × (period − 1) + x_t) / period
            RSI   = 100 − 100 / (1 + avg_gain / avg_loss)

        Un cambio de 0 cuenta como ganancia nula.

        Returns:
            Valor en [0, 100]. 100 si no hay pérdidas; 0 si hay menos de
            `period + 1` cierres.
        """
        if period <= 0 or len(closes) < period + 1:
            return 0.0

        changes = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
        gains = [c if c >= 0 else 0.0 for c in changes]
        losses = [-c if c < 0 else 0.0 for c in changes]

        avg_gain = sum(gains[:period]) / period
        avg_loss = sum(losses[:period]) / period

        for gain, loss in zip(gains[period:], losses[period:]):
            avg_gain = (avg_gain * (period - 1) + gain) / period
            avg_loss = (avg_loss * (period - 1) + loss) / period

        if avg_loss == 0:
            return 100.0

        rs = avg_gain / avg_loss
        return 100.0 - (100.0 / (1.0 + rs))

    @staticmethod
    def ema(values: Sequence[float], period: int) -> List[float]:
        """
        Serie EMA.

        La semilla (SMA de los primeros `period` valores) es el primer punto;
        la recurrencia `(v − prev) × 2/(period+1) + prev` se aplica desde el
        índice `period − 1` en adelante.

        Ejemplo: ema([1, 2, 3, 4, 5], 3) → [2, 2.5, 3.25, 4.125]

        Returns:
            Lista vacía si hay menos de `period` valores.
        """
        if period <= 0 or len(values) < period:
            return []

        k = 2.0 / (period + 1)
        prev = sum(values[:period]) / period
        series = [prev]
        for value in values[period - 1:]:
            prev = (value - prev) * k + prev
            series.append(prev)
        return series

    @staticmethod
    def macd(
        closes: Sequence[float],
        short_period: int,
        long_period: int,
        signal_period: int,
    ) -> MacdReading:
        """
        MACD con línea de señal e histograma.

        - Las dos EMAs se alinean por la cola (la larga es más corta).
        - histogram = último MACD − última señal.
        - Con menos de `long_period + signal_period` cierres → lectura en cero.
        """
        if len(closes) < long_period + signal_period:
            return MacdReading()

        short_ema = IndicatorCalculator.ema(closes, short_period)
        long_ema = IndicatorCalculator.ema(closes, long_period)
        if not short_ema or not long_ema:
            return MacdReading()

        aligned_short = short_ema[-len(long_ema):]
        macd_line = [s - l for s, l in zip(aligned_short, long_ema)]
        signal_line = IndicatorCalculator.ema(macd_line, signal_period)
        if not signal_line:
            return MacdReading()

        return MacdReading(
            value=macd_line[-1],
            signal=signal_line[-1],
            histogram=macd_line[-1] - signal_line[-1],
            short_ema=aligned_short[-1],
            long_ema=long_ema[-1],
        )

    @staticmethod
    def true_ranges(candles: Sequence[Candle]) -> List[float]:
        """TR por vela (desde la segunda): max(H−L, |H−Cprev|, |L−Cprev|)."""
        ranges = []
        for prev, cur in zip(candles, candles[1:]):
            ranges.append(
                max(
                    cur.high - cur.low,
                    abs(cur.high - prev.close),
                    abs(cur.low - prev.close),
                )
            )
        return ranges

    @staticmethod
    def atr(candles: Sequence[Candle], period: int) -> float:
        """
        ATR = media simple de los últimos `period` true ranges.

        Usa las últimas `period + 1` velas; si hay menos, promedia los TR
        disponibles. 0 si no hay al menos dos velas.
        """
        if period <= 0:
            return 0.0
        window = list(candles[-(period + 1):])
        ranges = IndicatorCalculator.true_ranges(window)
        if not ranges:
            return 0.0
        return sum(ranges) / len(ranges)

    @staticmethod
    def sma(values: Sequence[float], period: int) -> Optional[float]:
        """Media simple de los últimos `period` valores (None si faltan datos)."""
        if period <= 0 or len(values) < period:
            return None
        return sum(values[-period:]) / period

    @staticmethod
    def volume_spike(volumes: Sequence[float], bar_count: int, factor: float) -> bool:
        """True si alguna de las últimas `bar_count` velas supera factor × media."""
        window = list(volumes[-bar_count:]) if bar_count > 0 else []
        if not window:
            return False
        mean = sum(window) / len(window)
        threshold = factor * mean
        return any(v > threshold for v in window)

    @staticmethod
    def volatility_spike(candles: Sequence[Candle], lookback: int, threshold: float) -> bool:
        """True si el rango de la última vela supera threshold × rango medio."""
        window = list(candles[-lookback:]) if lookback > 0 else []
        if not window:
            return False
        mean_range = sum(c.range for c in window) / len(window)
        if mean_range <= 0:
            return False
        return window[-1].range > threshold * mean_range
