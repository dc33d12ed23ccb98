"""Strategy variants (entry rules) and the shared exit protocol."""

from tradeflow.domain.strategies.base import Strategy
from tradeflow.domain.strategies.invalid import INVALID_STRATEGY_REASON, InvalidStrategy
from tradeflow.domain.strategies.mean_reversion import MeanReversionStrategy
from tradeflow.domain.strategies.registry import STRATEGIES, resolve_strategy
from tradeflow.domain.strategies.scalping import ScalpingStrategy
from tradeflow.domain.strategies.trend_following import TrendFollowingStrategy
from tradeflow.domain.strategies.volatility_breakout import VolatilityBreakoutStrategy

__all__ = [
    "Strategy",
    "MeanReversionStrategy",
    "TrendFollowingStrategy",
    "ScalpingStrategy",
    "VolatilityBreakoutStrategy",
    "InvalidStrategy",
    "INVALID_STRATEGY_REASON",
    "STRATEGIES",
    "resolve_strategy",
]
