"""
TradeFlow – Application Port: Market Data Provider
==================================================
Datos de arranque de un pipeline: ventana histórica de velas por símbolo y
balance inicial. La infraestructura decide CÓMO obtenerlos (REST de
Kraken, fixtures en tests, etc.).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from tradeflow.domain.entities.candle import Candle
from tradeflow.domain.entities.portfolio import Portfolio
from tradeflow.domain.entities.strategy_config import StrategyConfig


class IMarketDataProvider(ABC):
    """
    Interfaz para proveer datos de bootstrap.

    IMPLEMENTACIONES:
    - KrakenRestClient (producción)
    - Fakes en memoria (testing)
    """

    @abstractmethod
    async def get_historical_candles(
        self,
        symbol: str,
        interval: int,
        limit: int = 100,
    ) -> List[Candle]:
        """
        Velas históricas, de la más antigua a la más nueva.

        La última puede estar aún en formación.

        Args:
            symbol: Par (e.g. "BTC/USD")
            interval: Minutos por vela
            limit: Máximo de velas a retornar (las más recientes)
        """
        pass

    @abstractmethod
    async def get_starting_portfolio(self, config: StrategyConfig) -> Portfolio:
        """Portafolio inicial (balance, sin posiciones) de la configuración."""
        pass
