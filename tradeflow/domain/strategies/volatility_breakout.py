"""
TradeFlow – Strategy: Volatility Breakout
=========================================
Expansión de volatilidad confirmada por volumen; RSI solo como filtro.
"""

from __future__ import annotations

from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.strategies.base import Strategy
from tradeflow.domain.value_objects.decision import EntryDecision
from tradeflow.domain.value_objects.indicator_snapshot import IndicatorSnapshot

RSI_LOW = 40.0
RSI_HIGH = 60.0


class VolatilityBreakoutStrategy(Strategy):
    kind = "volatilityBreakout"

    def evaluate_entry(
        self,
        indicators: IndicatorSnapshot,
        config: StrategyConfig,
        price: float,
    ) -> EntryDecision:
        if not (indicators.volume_spike and indicators.volatility_spike):
            return EntryDecision.reject(
                "volatility breakout: requiere spike de volumen y de volatilidad"
            )

        rsi = indicators.rsi.current
        if not RSI_LOW < rsi < RSI_HIGH:
            return EntryDecision.reject(f"volatility breakout: RSI={rsi:.2f} fuera de 40-60")

        atr_pct = indicators.atr_percent(price)
        if not atr_pct > config.min_atr_percent:
            return EntryDecision.reject(
                f"volatility breakout: ATR%={atr_pct:.2f} ≤ {config.min_atr_percent}"
            )

        return EntryDecision.accept(
            f"volatility breakout: ATR%={atr_pct:.2f}, volumen confirmado"
        )
