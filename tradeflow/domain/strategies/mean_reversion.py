"""
TradeFlow – Strategy: Mean Reversion
====================================
Compra en sobreventa extrema esperando el regreso a la media.

ENTRADA:
  RSI < rsi_threshold
  AND (sin cruce MACD requerido OR (MACD > señal AND histograma > 0))
  AND (sin spike de volumen requerido OR spike de volumen presente)
"""

from __future__ import annotations

from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.strategies.base import Strategy
from tradeflow.domain.value_objects.decision import EntryDecision
from tradeflow.domain.value_objects.indicator_snapshot import IndicatorSnapshot


class MeanReversionStrategy(Strategy):
    kind = "meanReversion"

    def evaluate_entry(
        self,
        indicators: IndicatorSnapshot,
        config: StrategyConfig,
        price: float,
    ) -> EntryDecision:
        rsi = indicators.rsi.current
        macd = indicators.macd

        if not rsi < config.rsi_threshold:
            return EntryDecision.reject(
                f"mean reversion: RSI={rsi:.2f} no está bajo {config.rsi_threshold}"
            )
        if config.macd_cross_needed and not (macd.value > macd.signal and macd.histogram > 0):
            return EntryDecision.reject("mean reversion: sin cruce alcista de MACD")
        if config.volume_spike_required and not indicators.volume_spike:
            return EntryDecision.reject("mean reversion: sin spike de volumen")

        return EntryDecision.accept(
            f"mean reversion: RSI={rsi:.2f} (sobreventa), MACD cruzando al alza"
        )
