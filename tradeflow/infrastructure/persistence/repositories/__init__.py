"""Trade repository implementations."""

from tradeflow.infrastructure.persistence.repositories.in_memory_trade_repository import (
    InMemoryTradeRepository,
)
from tradeflow.infrastructure.persistence.repositories.trade_repository_impl import (
    SqlTradeRepository,
)

__all__ = ["InMemoryTradeRepository", "SqlTradeRepository"]
