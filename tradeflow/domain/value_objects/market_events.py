"""
TradeFlow – Value Objects: Market Events
========================================
Eventos que entrega el transporte al núcleo.

- BarEvent:  vela OHLCV (posiblemente aún en formación) de un intervalo.
- TickEvent: trade individual; solo refresca el último precio.

El transporte garantiza entrega at-least-once: pueden llegar duplicados o
tarde. El CandleAggregator se encarga de descartarlos.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tradeflow.domain.entities.candle import Candle


@dataclass(frozen=True, slots=True)
class BarEvent:
    symbol: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: float     # epoch de apertura de la vela
    interval: Optional[int] = None   # minutos; None = sin filtrar

    def to_candle(self) -> Candle:
        return Candle(
            symbol=self.symbol,
            timestamp=self.timestamp,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
        )


@dataclass(frozen=True, slots=True)
class TickEvent:
    symbol: str
    price: float
    quantity: float
    timestamp: float
