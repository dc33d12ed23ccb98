"""
TradeFlow – Strategy: Trend Following
=====================================
Entra cuando el momentum cruza el umbral con la tendencia confirmada.

ENTRADA:
  RSI previo < umbral ≤ RSI actual < 70
  AND MACD > señal AND MACD > 0 AND histograma > 0
  AND EMA corta > EMA larga
  AND sin spike de volatilidad
"""

from __future__ import annotations

from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.strategies.base import Strategy
from tradeflow.domain.value_objects.decision import EntryDecision
from tradeflow.domain.value_objects.indicator_snapshot import IndicatorSnapshot

RSI_CEILING = 70.0


class TrendFollowingStrategy(Strategy):
    kind = "trendFollowing"

    def evaluate_entry(
        self,
        indicators: IndicatorSnapshot,
        config: StrategyConfig,
        price: float,
    ) -> EntryDecision:
        rsi = indicators.rsi
        macd = indicators.macd

        crossed = rsi.previous < config.rsi_threshold <= rsi.current < RSI_CEILING
        if not crossed:
            return EntryDecision.reject(
                f"trend following: RSI {rsi.previous:.2f}→{rsi.current:.2f} "
                f"no cruza {config.rsi_threshold}"
            )
        if not (macd.value > macd.signal and macd.value > 0 and macd.histogram > 0):
            return EntryDecision.reject("trend following: MACD sin confirmación alcista")
        if not macd.short_ema > macd.long_ema:
            return EntryDecision.reject("trend following: EMA corta bajo EMA larga")
        if indicators.volatility_spike:
            return EntryDecision.reject("trend following: spike de volatilidad")

        return EntryDecision.accept(
            f"trend following: RSI={rsi.current:.2f}, MACD en tendencia alcista"
        )
