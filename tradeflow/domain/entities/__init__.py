"""Domain entities."""

from tradeflow.domain.entities.candle import Candle
from tradeflow.domain.entities.portfolio import Portfolio
from tradeflow.domain.entities.position import Position
from tradeflow.domain.entities.strategy_config import PRESETS, StrategyConfig, get_preset

__all__ = ["Candle", "Portfolio", "Position", "StrategyConfig", "PRESETS", "get_preset"]
