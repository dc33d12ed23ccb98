"""
TradeFlow – Domain Entity: Portfolio
====================================
Balance y posiciones abiertas de un pipeline.

REGLAS:
- `balance` solo cambia al CERRAR una posición (PnL neto de fees).
- `available_balance` no se guarda: se deriva siempre de balance menos el
  nocional comprometido en posiciones abiertas.
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional

from tradeflow.domain.entities.position import Position


class Portfolio:
    """Cartera de un pipeline (una configuración)."""

    def __init__(self, balance: float) -> None:
        self._balance = float(balance)
        self._positions: Dict[str, Position] = {}

    @property
    def balance(self) -> float:
        return self._balance

    @property
    def available_balance(self) -> float:
        committed = sum(p.notional for p in self._positions.values())
        return self._balance - committed

    @property
    def open_count(self) -> int:
        return len(self._positions)

    def get(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def has(self, symbol: str) -> bool:
        return symbol in self._positions

    def add(self, position: Position) -> None:
        self._positions[position.symbol] = position

    def remove(self, symbol: str) -> Optional[Position]:
        return self._positions.pop(symbol, None)

    def apply_realized(self, net_pnl: float) -> None:
        self._balance += net_pnl

    def positions(self) -> Iterator[Position]:
        return iter(list(self._positions.values()))

    def symbols(self) -> list[str]:
        return list(self._positions.keys())

    def to_dict(self) -> dict:
        return {
            "balance": round(self._balance, 8),
            "available_balance": round(self.available_balance, 8),
            "positions": [p.to_dict() for p in self._positions.values()],
        }
