"""
TradeFlow – Domain Services
===========================
Servicios de dominio puros (sin estado, sin I/O).
"""

from tradeflow.domain.services.indicator_calculator import IndicatorCalculator
from tradeflow.domain.services.risk_calculator import PnlBreakdown, RiskCalculator

__all__ = ["IndicatorCalculator", "RiskCalculator", "PnlBreakdown"]
