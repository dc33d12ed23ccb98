"""
TradeFlow – Shared Module
=========================
Utilidades transversales usadas por todas las capas.

- config/: Settings
- logging/: Setup de logging
- retry: política única de reintentos (persistencia, bootstrap, transporte)

NOTA: Este módulo no contiene lógica de negocio.
"""

from tradeflow.shared.config.settings import Settings, settings
from tradeflow.shared.logging.logger import get_logger, setup_logging
from tradeflow.shared.retry import RetryPolicy

__all__ = [
    "Settings",
    "settings",
    "setup_logging",
    "get_logger",
    "RetryPolicy",
]
