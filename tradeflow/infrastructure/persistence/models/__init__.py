"""ORM models."""

from tradeflow.infrastructure.persistence.models.trade import TradeModel

__all__ = ["TradeModel"]
