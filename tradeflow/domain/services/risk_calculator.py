"""
TradeFlow – Domain Service: Risk Calculator
===========================================
Tamaño de posición y contabilidad de PnL/fees. Funciones puras.

TAMAÑO DE POSICIÓN (en unidades del activo):
    por_cuenta   = balance × max_position_size / precio
    por_riesgo   = balance × risk_fraction / (precio × stop_loss_pct / 100)
    ajuste_vol   = min(1, max_volatility / atr%)     (1 si atr% = 0)
    tamaño       = min(por_cuenta, por_riesgo) × ajuste_vol
    tamaño       = min(tamaño, por_cuenta)           ← tope de cuenta

PNL:
    bruto = (salida − entrada) × cantidad
    fees  = fee_rate × cantidad × (entrada + salida)
    neto  = bruto − fees
"""

from __future__ import annotations

from dataclasses import dataclass

from tradeflow.domain.entities.strategy_config import StrategyConfig


@dataclass(frozen=True, slots=True)
class PnlBreakdown:
    gross: float
    fees: float
    net: float
    net_pct: float     # neto / nocional de entrada × 100

    def to_dict(self) -> dict:
        return {
            "gross": self.gross,
            "fees": self.fees,
            "net": self.net,
            "net_pct": self.net_pct,
        }


class RiskCalculator:
    """Cálculos de riesgo sin estado."""

    @staticmethod
    def volatility_adjustment(max_volatility: float, atr_percent: float) -> float:
        if atr_percent <= 0:
            return 1.0
        return min(1.0, max_volatility / atr_percent)

    @staticmethod
    def position_size(
        balance: float,
        price: float,
        atr: float,
        config: StrategyConfig,
    ) -> float:
        """Cantidad a comprar; 0 si precio o balance no son válidos."""
        if price <= 0 or balance <= 0:
            return 0.0

        by_account = balance * config.max_position_size / price
        by_risk = (balance * config.risk_fraction) / (price * (config.stop_loss_pct / 100))

        atr_percent = atr / price * 100
        adjustment = RiskCalculator.volatility_adjustment(config.max_volatility, atr_percent)

        size = min(by_account, by_risk) * adjustment
        return min(size, by_account)

    @staticmethod
    def realized_pnl(
        entry_price: float,
        exit_price: float,
        quantity: float,
        fee_rate: float,
    ) -> PnlBreakdown:
        gross = (exit_price - entry_price) * quantity
        fees = fee_rate * quantity * (entry_price + exit_price)
        net = gross - fees
        notional = entry_price * quantity
        net_pct = net / notional * 100 if notional > 0 else 0.0
        return PnlBreakdown(gross=gross, fees=fees, net=net, net_pct=net_pct)
