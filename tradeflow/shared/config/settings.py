"""
TradeFlow – Settings (Pydantic BaseSettings)
============================================
Configuración centralizada cargada desde variables de entorno / .env.
Se usa pydantic-settings para validación estricta al arranque.

Las configuraciones de estrategia (umbrales, periodos, stops) NO viven aquí:
son presets inmutables en domain/entities/strategy_config.py. Aquí solo se
elige cuáles se activan y se ajustan los parámetros de infraestructura.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ─── Kraken ─────────────────────────────────────────────────────────
    kraken_ws_url: str = Field(
        default="wss://ws.kraken.com/v2",
        description="WebSocket público v2 de Kraken (ohlc + trade)",
    )
    kraken_rest_url: str = Field(
        default="https://api.kraken.com",
        description="Base URL del API REST de Kraken",
    )
    kraken_api_key: str = Field(default="", description="API key (solo modo live)")
    kraken_api_secret: str = Field(
        default="", description="API secret en base64 (solo modo live)"
    )
    kraken_request_timeout: float = Field(
        default=10.0, description="Timeout (seg) de cada request REST"
    )

    # Pares a suscribir (formato Kraken v2)
    symbols: List[str] = Field(
        default=["BTC/USD", "ETH/USD", "SOL/USD"],
        description="Pares a operar",
    )

    # ─── Estrategias ────────────────────────────────────────────────────
    active_strategies: List[str] = Field(
        default=["meanReversion", "trendFollowing", "scalping"],
        description="Nombres de presets a ejecutar en paralelo",
    )
    trade_balance: Optional[float] = Field(
        default=None, description="Sobrescribe el balance inicial de cada preset",
    )
    live_trading: bool = Field(
        default=False, description="Enviar órdenes reales al exchange",
    )
    test_case: str = Field(
        default="default", description="Etiqueta de corrida guardada con cada trade",
    )

    # ─── Reconexión ─────────────────────────────────────────────────────
    ws_reconnect_base_delay: float = Field(
        default=5.0, description="Delay base (seg) para backoff exponencial"
    )
    ws_reconnect_max_delay: float = Field(
        default=60.0, description="Delay máximo (seg) entre reconexiones"
    )
    ws_reconnect_max_attempts: int = Field(
        default=5, description="Intentos de reconexión antes de rendirse"
    )
    ws_heartbeat_interval: int = Field(
        default=30, description="Intervalo (seg) de ping/heartbeat"
    )

    # ─── Persistencia (reintentos) ──────────────────────────────────────
    persistence_retry_attempts: int = Field(
        default=3, description="Intentos por operación de persistencia"
    )
    persistence_retry_base_delay: float = Field(
        default=0.5, description="Delay base (seg) entre reintentos"
    )
    persistence_retry_max_delay: float = Field(
        default=5.0, description="Delay máximo (seg) entre reintentos"
    )

    # ─── Event Bus ──────────────────────────────────────────────────────
    event_bus_max_queue_size: int = Field(
        default=10_000,
        description="Tamaño máximo de cola del Event Bus para contrapresión",
    )

    # ─── MySQL Database ─────────────────────────────────────────────────
    db_host: str = Field(default="localhost", description="MySQL host")
    db_port: int = Field(default=3306, description="MySQL port")
    db_user: str = Field(default="tradeflow", description="MySQL username")
    db_password: str = Field(default="tradeflow_secret", description="MySQL password")
    db_name: str = Field(default="tradeflow", description="MySQL database name")
    db_echo: bool = Field(default=False, description="Loguear queries SQL (debug)")
    db_pool_size: int = Field(default=5, description="Conexiones en el pool")
    db_max_overflow: int = Field(default=10, description="Conexiones extra en picos")
    db_enabled: bool = Field(default=False, description="Habilitar persistencia MySQL")

    # ─── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Nivel del root logger")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton global – se importa donde se necesite
settings = Settings()
