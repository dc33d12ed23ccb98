"""
TradeFlow – Market State
========================
Estado en memoria por símbolo para UN pipeline: buffer de velas cerradas,
vela en formación y último precio observado.

PROTECCIÓN DE MEMORIA:
- El buffer usa collections.deque(maxlen=capacity) → la vela más antigua se
  descarta sola (FIFO) al exceder la capacidad.

AISLAMIENTO:
- Cada pipeline crea su propio MarketStateManager; no existe instancia
  global, así N configuraciones corren en paralelo sin cruzarse.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

from tradeflow.domain.entities.candle import Candle
from tradeflow.shared.logging.logger import get_logger

logger = get_logger("market_state")


@dataclass
class SymbolState:
    """Estado de mercado para UN símbolo."""

    symbol: str
    capacity: int
    candles: Deque[Candle] = field(init=False)
    forming: Optional[Candle] = None
    last_price: float = 0.0
    last_price_time: float = 0.0

    # Contadores de monitoreo
    total_bars: int = 0
    total_ticks: int = 0
    stale_events: int = 0

    def __post_init__(self) -> None:
        self.candles = deque(maxlen=self.capacity)

    @property
    def last_closed_timestamp(self) -> Optional[float]:
        return self.candles[-1].timestamp if self.candles else None


class MarketStateManager:
    """Acceso: manager.get_or_create(symbol) → SymbolState."""

    def __init__(self, capacity: int) -> None:
        self._capacity = capacity
        self._states: Dict[str, SymbolState] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, symbol: str) -> Optional[SymbolState]:
        return self._states.get(symbol)

    def get_or_create(self, symbol: str) -> SymbolState:
        if symbol not in self._states:
            self._states[symbol] = SymbolState(symbol=symbol, capacity=self._capacity)
            logger.debug("Estado creado para '%s' (capacidad=%d)", symbol, self._capacity)
        return self._states[symbol]

    def get_candles(self, symbol: str) -> list[Candle]:
        state = self._states.get(symbol)
        return list(state.candles) if state else []

    def get_last_price(self, symbol: str) -> float:
        state = self._states.get(symbol)
        return state.last_price if state else 0.0

    def get_all_symbols(self) -> list[str]:
        return list(self._states.keys())

    def snapshot(self) -> dict:
        """Snapshot para diagnóstico."""
        return {
            symbol: {
                "buffered": len(s.candles),
                "capacity": s.capacity,
                "forming": s.forming.to_dict() if s.forming else None,
                "last_price": s.last_price,
                "total_bars": s.total_bars,
                "total_ticks": s.total_ticks,
                "stale_events": s.stale_events,
            }
            for symbol, s in self._states.items()
        }
