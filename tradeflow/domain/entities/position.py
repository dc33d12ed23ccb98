"""
TradeFlow – Domain Entity: Position
===================================
Posición abierta (long) de un símbolo dentro de UN pipeline.

CICLO DE VIDA:
  - La crea el PositionLedger solo tras persistir el trade abierto.
  - Única mutación permitida mientras vive: subir `peak_price`.
  - Se elimina del ledger al cerrarse.

`peak_price` es un high-water mark: nunca baja mientras la posición existe.
"""

from __future__ import annotations

from typing import Optional


class Position:
    """Posición larga con tracking de pico para trailing stop."""

    __slots__ = (
        "symbol",
        "entry_price",
        "quantity",
        "strategy_label",
        "entry_time",
        "peak_price",
        "trade_id",
        "config_id",
    )

    def __init__(
        self,
        symbol: str,
        entry_price: float,
        quantity: float,
        strategy_label: str,
        entry_time: float,
        peak_price: Optional[float] = None,
        trade_id: Optional[int] = None,
        config_id: str = "",
    ) -> None:
        self.symbol = symbol
        self.entry_price = entry_price
        self.quantity = quantity
        self.strategy_label = strategy_label
        self.entry_time = entry_time          # epoch (seg)
        self.peak_price = max(peak_price or entry_price, entry_price)
        self.trade_id = trade_id
        self.config_id = config_id

    # ─── Mutación ──────────────────────────────────────────────────────

    def raise_peak(self, price: float) -> bool:
        """Subir el pico si `price` lo supera. Retorna True si cambió."""
        if price > self.peak_price:
            self.peak_price = price
            return True
        return False

    # ─── Derivados ─────────────────────────────────────────────────────

    @property
    def notional(self) -> float:
        return self.entry_price * self.quantity

    def unrealized_pnl(self, price: float) -> float:
        return (price - self.entry_price) * self.quantity

    def unrealized_pnl_pct(self, price: float) -> float:
        if self.entry_price <= 0:
            return 0.0
        return (price - self.entry_price) / self.entry_price * 100.0

    def elapsed_minutes(self, now: float) -> float:
        return (now - self.entry_time) / 60.0

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "entry_price": self.entry_price,
            "quantity": self.quantity,
            "strategy": self.strategy_label,
            "entry_time": self.entry_time,
            "peak_price": self.peak_price,
            "trade_id": self.trade_id,
            "config_id": self.config_id,
        }

    def __repr__(self) -> str:
        return (
            f"Position({self.symbol} qty={self.quantity:.6f} "
            f"entry={self.entry_price} peak={self.peak_price})"
        )
