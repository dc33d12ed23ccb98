"""Use cases: per-configuration pipeline and the multi-configuration coordinator."""

from tradeflow.application.use_cases.engine_coordinator import EngineCoordinator
from tradeflow.application.use_cases.strategy_pipeline import StrategyPipeline

__all__ = ["EngineCoordinator", "StrategyPipeline"]
