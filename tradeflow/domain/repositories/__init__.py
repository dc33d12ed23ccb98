"""Repository interfaces (ports implemented in infrastructure)."""

from tradeflow.domain.repositories.trade_repository import (
    ITradeRepository,
    OpenTradeRecord,
    StoredOpenTrade,
)

__all__ = ["ITradeRepository", "OpenTradeRecord", "StoredOpenTrade"]
