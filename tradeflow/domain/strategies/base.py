"""
TradeFlow – Strategy Protocol (base)
====================================
Contrato común de todas las estrategias.

    evaluate_entry(indicators, config, price) → EntryDecision
    evaluate_exit(position, indicators, config, price, peak_price, now)
        → ExitDecision

Cada variante implementa SOLO su regla de entrada. La salida es común y se
evalúa en este orden (la primera que aplica gana):

  1. Piso de tenencia   → elapsed < min_hold            → hold (minHoldTime)
  2. Techo de tenencia  → elapsed ≥ max_hold efectivo   → exit (holdTime)
  3. Stop-loss / take-profit (dinámicos con ATR si aplica)
  4. Trailing stop desde el pico                        → exit (trailingStop)
  5. hold

Son funciones puras: no mutan la posición ni el snapshot.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Optional

from tradeflow.domain.entities.position import Position
from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.value_objects.decision import EntryDecision, ExitDecision, ExitReason
from tradeflow.domain.value_objects.indicator_snapshot import IndicatorSnapshot

# Tolerancia para comparaciones de porcentajes en float
_PCT_EPSILON = 1e-9


class Strategy(ABC):
    """Estrategia de trading: entrada específica + salida común."""

    kind: str = ""

    @abstractmethod
    def evaluate_entry(
        self,
        indicators: IndicatorSnapshot,
        config: StrategyConfig,
        price: float,
    ) -> EntryDecision:
        ...

    # ════════════════════════════════════════════════════════════════
    #  SALIDA
    # ════════════════════════════════════════════════════════════════

    def evaluate_exit(
        self,
        position: Position,
        indicators: IndicatorSnapshot,
        config: StrategyConfig,
        price: float,
        peak_price: float,
        now: Optional[float] = None,
    ) -> ExitDecision:
        now = time.time() if now is None else now
        elapsed = position.elapsed_minutes(now)
        pnl_pct = position.unrealized_pnl_pct(price)

        # ── 1. Piso de tenencia ──
        if elapsed < config.min_hold_time_minutes:
            return ExitDecision.hold(ExitReason.MIN_HOLD_TIME)

        # ── 2. Techo de tenencia ──
        if elapsed >= self.effective_max_hold(config, indicators, pnl_pct):
            return ExitDecision.close(ExitReason.HOLD_TIME)

        # ── 3. Stop-loss / take-profit ──
        stop_loss, take_profit = self.stop_levels(config, indicators, price)
        if pnl_pct >= take_profit:
            return ExitDecision.close(ExitReason.TAKE_PROFIT)
        if pnl_pct <= -stop_loss:
            return ExitDecision.close(ExitReason.STOP_LOSS)

        # ── 4. Trailing stop ──
        if config.trailing_stop_loss is not None and peak_price > 0:
            drawdown = (peak_price - price) / peak_price * 100
            if drawdown >= config.trailing_stop_loss - _PCT_EPSILON:
                return ExitDecision.close(ExitReason.TRAILING_STOP)

        return ExitDecision.hold()

    # ─── Helpers (públicos para testeo) ─────────────────────────────────

    @staticmethod
    def fee_adjusted_threshold(config: StrategyConfig) -> float:
        """PnL% mínimo que cubre fees de ida y vuelta + 1%."""
        return 1 + 2 * config.fee_rate * 100

    @staticmethod
    def effective_max_hold(
        config: StrategyConfig,
        indicators: IndicatorSnapshot,
        pnl_pct: float,
    ) -> float:
        """Tenencia máxima (min) ajustada por PnL y, opcionalmente, volatilidad."""
        max_hold = float(config.max_hold_time_minutes)

        if pnl_pct > 3:
            max_hold *= 1.5
        elif 0 < pnl_pct < Strategy.fee_adjusted_threshold(config):
            max_hold *= 0.7

        if config.adjust_hold_time_with_volatility:
            multiplier = 1.0
            if indicators.volatility_spike:
                multiplier *= 0.7
            if abs(indicators.macd.value) > abs(indicators.macd.signal) * 2:
                multiplier *= 1.3
            if not indicators.volume_spike:
                multiplier *= 0.9
            max_hold *= multiplier

        return max_hold

    @staticmethod
    def stop_levels(
        config: StrategyConfig,
        indicators: IndicatorSnapshot,
        price: float,
    ) -> tuple[float, float]:
        """(stop_loss%, take_profit%) efectivos."""
        stop_loss = config.stop_loss_pct
        take_profit = config.take_profit_pct
        if config.dynamic_stop_loss:
            atr_pct = indicators.atr_percent(price)
            stop_loss = max(stop_loss, 3 * atr_pct)
            take_profit = max(take_profit, 6 * atr_pct)
        return stop_loss, take_profit

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r})"
