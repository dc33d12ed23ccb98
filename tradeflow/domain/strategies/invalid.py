"""
TradeFlow – Strategy: Invalid
=============================
Variante para tipos de estrategia desconocidos. Nunca entra y nunca lanza;
la salida común sigue disponible para posiciones restauradas.
"""

from __future__ import annotations

from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.strategies.base import Strategy
from tradeflow.domain.value_objects.decision import EntryDecision
from tradeflow.domain.value_objects.indicator_snapshot import IndicatorSnapshot

INVALID_STRATEGY_REASON = "invalid strategy"


class InvalidStrategy(Strategy):
    def __init__(self, kind: str = "") -> None:
        self.kind = kind

    def evaluate_entry(
        self,
        indicators: IndicatorSnapshot,
        config: StrategyConfig,
        price: float,
    ) -> EntryDecision:
        return EntryDecision.reject(INVALID_STRATEGY_REASON)
