"""
TradeFlow – Indicator Engine
============================
Snapshots de indicadores por símbolo para UN pipeline.

- Se invoca una vez por vela CERRADA con el buffer completo.
- Si el buffer tiene menos de `minimum_required_candles` velas, no hace
  nada: el snapshot previo se conserva (None = "no listo").
- El snapshot se reemplaza entero; nunca se actualiza parcialmente.

La matemática vive en domain/services/indicator_calculator.py.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

from tradeflow.domain.entities.candle import Candle
from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.services.indicator_calculator import IndicatorCalculator
from tradeflow.domain.value_objects.indicator_snapshot import IndicatorSnapshot, RsiReading
from tradeflow.shared.logging.logger import get_logger

logger = get_logger("indicator_engine")


class IndicatorEngine:
    """Calcula y guarda el IndicatorSnapshot de cada símbolo."""

    def __init__(self, config: StrategyConfig) -> None:
        self._config = config
        self._snapshots: Dict[str, IndicatorSnapshot] = {}

    def get(self, symbol: str) -> Optional[IndicatorSnapshot]:
        return self._snapshots.get(symbol)

    def is_ready(self, symbol: str) -> bool:
        return symbol in self._snapshots

    def recompute(self, symbol: str, candles: Sequence[Candle]) -> Optional[IndicatorSnapshot]:
        """
        Recalcular el snapshot de `symbol` desde `candles`.

        Returns:
            El snapshot vigente (nuevo o el previo si no hay velas suficientes).
        """
        cfg = self._config
        if len(candles) < cfg.minimum_required_candles:
            logger.debug(
                "[%s] %d/%d velas – indicadores aún no listos",
                symbol, len(candles), cfg.minimum_required_candles,
            )
            return self._snapshots.get(symbol)

        snapshot = self.compute(candles, cfg)
        self._snapshots[symbol] = snapshot
        return snapshot

    @staticmethod
    def compute(candles: Sequence[Candle], cfg: StrategyConfig) -> IndicatorSnapshot:
        calc = IndicatorCalculator
        closes = [c.close for c in candles]
        volumes = [c.volume for c in candles]
        period = cfg.rsi_period

        rsi_current = calc.rsi(closes[-(period + 1):], period)
        rsi_previous = calc.rsi(closes[-(period + 2):-1], period)

        macd = calc.macd(
            closes,
            cfg.short_ema_period,
            cfg.long_ema_period,
            cfg.signal_ema_period,
        )
        sma = calc.sma(closes, cfg.long_ema_period)

        return IndicatorSnapshot(
            rsi=RsiReading(current=rsi_current, previous=rsi_previous),
            macd=macd,
            atr=calc.atr(candles, cfg.volatility_lookback),
            sma=sma if sma is not None else 0.0,
            volume_spike=calc.volume_spike(
                volumes, cfg.volume_spike_bar_count, cfg.volume_spike_factor
            ),
            volatility_spike=calc.volatility_spike(
                candles, cfg.volatility_lookback, cfg.volatility_threshold
            ),
        )

    def snapshot(self) -> dict:
        return {symbol: snap.to_dict() for symbol, snap in self._snapshots.items()}
