"""
TradeFlow – Strategy: Scalping
==============================
Trades cortos de momentum con confirmación de volumen.

ENTRADA:
  RSI > umbral AND MACD > señal AND MACD > 0
  AND spike de volumen
  AND min_atr_percent < ATR% < max_atr_percent  (preset: 0.1% y 1.0%)
"""

from __future__ import annotations

from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.strategies.base import Strategy
from tradeflow.domain.value_objects.decision import EntryDecision
from tradeflow.domain.value_objects.indicator_snapshot import IndicatorSnapshot


class ScalpingStrategy(Strategy):
    kind = "scalping"

    def evaluate_entry(
        self,
        indicators: IndicatorSnapshot,
        config: StrategyConfig,
        price: float,
    ) -> EntryDecision:
        rsi = indicators.rsi.current
        macd = indicators.macd

        if not rsi > config.rsi_threshold:
            return EntryDecision.reject(
                f"scalping: RSI={rsi:.2f} no supera {config.rsi_threshold}"
            )
        if not (macd.value > macd.signal and macd.value > 0):
            return EntryDecision.reject("scalping: MACD sin momentum alcista")
        if not indicators.volume_spike:
            return EntryDecision.reject("scalping: sin spike de volumen")

        atr_pct = indicators.atr_percent(price)
        upper = config.max_atr_percent if config.max_atr_percent is not None else float("inf")
        if not config.min_atr_percent < atr_pct < upper:
            return EntryDecision.reject(f"scalping: ATR%={atr_pct:.3f} fuera de rango")

        return EntryDecision.accept(
            f"scalping: RSI={rsi:.2f}, spike de volumen, ATR%={atr_pct:.3f}"
        )
