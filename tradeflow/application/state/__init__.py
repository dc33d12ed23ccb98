"""Per-pipeline in-memory state."""

from tradeflow.application.state.market_state import MarketStateManager, SymbolState

__all__ = ["MarketStateManager", "SymbolState"]
