"""
TradeFlow – Domain Repository Interface: Trades
===============================================
Espejo durable de las posiciones, indexado por símbolo + configuración.

Todas las llamadas pueden fallar:
  - TransientPersistenceError → reintentable (lock, deadlock, conexión)
  - PersistenceError          → definitivo

El núcleo trata cada llamada como reintentable sin efectos duplicados.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True, slots=True)
class OpenTradeRecord:
    """Fila de trade abierto a insertar."""

    portfolio_id: int
    config_id: str
    symbol: str
    entry_price: float
    amount: float
    opened_at: float          # epoch (seg)
    peak_price: float
    notes: str = ""
    test_case: str = "default"
    side: str = "long"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class StoredOpenTrade:
    """Trade abierto leído del store (recuperación tras reinicio)."""

    trade_id: int
    symbol: str
    entry_price: float
    amount: float
    opened_at: float
    peak_price: Optional[float]
    notes: str = ""


class ITradeRepository(ABC):
    """Interfaz de persistencia de trades."""

    @abstractmethod
    async def insert_open_trade(self, record: OpenTradeRecord) -> int:
        """Insertar trade abierto. Retorna su ID."""
        pass

    @abstractmethod
    async def update_trade(self, trade_id: int, fields: Dict[str, Any]) -> None:
        """
        Actualización parcial de un trade.

        Campos usados: pnl, pnl_percentage, peak_price (mark-to-market) y
        status, exit_price, closed_at, reason (cierre).
        """
        pass

    @abstractmethod
    async def query_open_trade_id(
        self,
        symbol: str,
        config_id: str,
    ) -> Optional[Tuple[int, Optional[float]]]:
        """(id, peak_price) del trade abierto del símbolo para `config_id`, o None."""
        pass

    @abstractmethod
    async def find_open_trades(self, config_id: str) -> List[StoredOpenTrade]:
        """Todos los trades abiertos de la configuración `config_id`."""
        pass
