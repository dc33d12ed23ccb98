"""
TradeFlow – Motor de estrategias sobre datos de mercado en streaming.

Capas:
  - domain/: entidades, indicadores, estrategias, riesgo
  - application/: agregador de velas, motor de indicadores, ledger, pipelines
  - infrastructure/: EventBus, clientes de Kraken, persistencia MySQL
  - shared/: settings, logging, reintentos
"""

__version__ = "0.1.0"
