"""Application ports."""

from tradeflow.application.ports.market_data_provider import IMarketDataProvider
from tradeflow.application.ports.order_executor import IOrderExecutor

__all__ = ["IMarketDataProvider", "IOrderExecutor"]
