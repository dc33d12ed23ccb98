"""
TradeFlow – Value Object: IndicatorSnapshot
===========================================
Foto inmutable de los indicadores de un símbolo, calculada sobre el buffer
completo de velas cerradas. Se reemplaza entera en cada vela cerrada;
nunca se actualiza parcialmente.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class RsiReading:
    current: float = 0.0
    previous: float = 0.0


@dataclass(frozen=True, slots=True)
class MacdReading:
    value: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0
    short_ema: float = 0.0
    long_ema: float = 0.0


@dataclass(frozen=True, slots=True)
class IndicatorSnapshot:
    rsi: RsiReading = field(default_factory=RsiReading)
    macd: MacdReading = field(default_factory=MacdReading)
    atr: float = 0.0
    sma: float = 0.0
    volume_spike: bool = False
    volatility_spike: bool = False

    def atr_percent(self, price: float) -> float:
        """ATR expresado como % del precio (0 si el precio no es válido)."""
        if price <= 0:
            return 0.0
        return self.atr / price * 100.0

    def to_dict(self) -> dict:
        return {
            "rsi": {"current": self.rsi.current, "previous": self.rsi.previous},
            "macd": {
                "value": self.macd.value,
                "signal": self.macd.signal,
                "histogram": self.macd.histogram,
                "short_ema": self.macd.short_ema,
                "long_ema": self.macd.long_ema,
            },
            "atr": self.atr,
            "sma": self.sma,
            "volume_spike": self.volume_spike,
            "volatility_spike": self.volatility_spike,
        }
