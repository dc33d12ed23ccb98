"""
TradeFlow – Application Services
================================
Servicios con estado por pipeline: agregación de velas, snapshots de
indicadores y libro de posiciones.
"""

from tradeflow.application.services.candle_aggregator import CandleAggregator, IngestResult
from tradeflow.application.services.indicator_engine import IndicatorEngine
from tradeflow.application.services.position_ledger import ClosedPosition, PositionLedger

__all__ = [
    "CandleAggregator",
    "IngestResult",
    "IndicatorEngine",
    "PositionLedger",
    "ClosedPosition",
]
