"""
TradeFlow – Application Port: Order Executor
============================================
Envío de órdenes de mercado (solo en modo live). Se invoca ANTES de tocar
el estado local; un fallo lanza OrderPlacementError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict


class IOrderExecutor(ABC):

    @abstractmethod
    async def submit_market_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
    ) -> Dict[str, Any]:
        """Enviar orden de mercado `side` ∈ {"buy", "sell"}. Retorna el ack del venue."""
        pass
