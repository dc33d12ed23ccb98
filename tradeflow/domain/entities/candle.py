"""
TradeFlow – Domain Entity: Candle
=================================
Vela OHLCV inmutable.

- frozen=True → una vez que empieza la vela siguiente nadie puede alterarla.
- timestamp = instante de APERTURA de la vela (epoch en segundos).
- Se usa dataclass por rendimiento (más ligera que Pydantic para hot-path).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Candle:
    """Vela OHLCV con timestamp de apertura."""

    symbol: str          # e.g. "BTC/USD"
    timestamp: float     # epoch de apertura
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def range(self) -> float:
        return self.high - self.low

    def same_values(self, other: "Candle") -> bool:
        """True si `other` no aporta cambios de high/low/close/volume."""
        return (
            self.high == other.high
            and self.low == other.low
            and self.close == other.close
            and self.volume == other.volume
        )

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }
