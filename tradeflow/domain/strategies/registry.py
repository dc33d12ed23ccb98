"""
TradeFlow – Strategy Registry
=============================
Resolución tipo → variante, una sola vez al cargar la configuración.
"""

from __future__ import annotations

from typing import Dict, Type

from tradeflow.domain.strategies.base import Strategy
from tradeflow.domain.strategies.invalid import InvalidStrategy
from tradeflow.domain.strategies.mean_reversion import MeanReversionStrategy
from tradeflow.domain.strategies.scalping import ScalpingStrategy
from tradeflow.domain.strategies.trend_following import TrendFollowingStrategy
from tradeflow.domain.strategies.volatility_breakout import VolatilityBreakoutStrategy
from tradeflow.shared.logging.logger import get_logger

logger = get_logger("strategy_registry")

STRATEGIES: Dict[str, Type[Strategy]] = {
    cls.kind: cls
    for cls in (
        MeanReversionStrategy,
        TrendFollowingStrategy,
        ScalpingStrategy,
        VolatilityBreakoutStrategy,
    )
}


def resolve_strategy(kind: str) -> Strategy:
    """Instancia la variante de `kind`; tipo desconocido → InvalidStrategy."""
    cls = STRATEGIES.get(kind)
    if cls is None:
        logger.error("Tipo de estrategia desconocido '%s' – no habrá entradas", kind)
        return InvalidStrategy(kind)
    return cls()
