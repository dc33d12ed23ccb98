"""
TradeFlow – Main Entry Point
============================
Orquesta todos los componentes: Kraken WS + EventBus + N pipelines de
estrategia (agregador + indicadores + ledger) + persistencia.

ARQUITECTURA DE ARRANQUE:
  1. Configurar logging
  2. Resolver presets activos (settings.active_strategies)
  3. Elegir repositorio: MySQL (db_enabled) o en memoria
  4. Crear cliente REST, EventBus y EngineCoordinator
  5. EngineCoordinator.start(): bootstrap concurrente + suscripción
  6. Iniciar KrakenWebSocketClient (un ohlc por intervalo activo + trade)
  7. Esperar SIGINT/SIGTERM o la caída definitiva del transporte
  8. Detener todo en orden inverso

FLUJO DE DATOS:
  Kraken WS → KrakenWebSocketClient → EventBus("market")
       → StrategyPipeline (uno por configuración)
            → CandleAggregator → IndicatorEngine → Strategy
            → PositionLedger → ITradeRepository (MySQL)

  python -m tradeflow.main
"""

from __future__ import annotations

import asyncio
import signal
from typing import List, Optional

from tradeflow.application.use_cases.engine_coordinator import EngineCoordinator
from tradeflow.domain.entities.strategy_config import StrategyConfig, get_preset
from tradeflow.domain.repositories.trade_repository import ITradeRepository
from tradeflow.infrastructure.external.event_bus import EventBus
from tradeflow.infrastructure.external.kraken_rest_client import KrakenRestClient
from tradeflow.infrastructure.external.kraken_ws_client import KrakenWebSocketClient
from tradeflow.infrastructure.persistence.database import DatabaseManager
from tradeflow.infrastructure.persistence.repositories import (
    InMemoryTradeRepository,
    SqlTradeRepository,
)
from tradeflow.shared.config.settings import Settings, settings
from tradeflow.shared.logging.logger import get_logger, setup_logging
from tradeflow.shared.retry import RetryPolicy

logger = get_logger("main")


def build_configs(cfg: Settings) -> List[StrategyConfig]:
    """Presets activos con los overrides globales de settings."""
    return [
        get_preset(
            name,
            trade_balance=cfg.trade_balance,
            live_trading=cfg.live_trading,
        )
        for name in cfg.active_strategies
    ]


async def main(cfg: Settings = settings) -> None:
    setup_logging(cfg.log_level)

    configs = build_configs(cfg)
    intervals = sorted({c.interval_minutes for c in configs})

    logger.info("=" * 60)
    logger.info("  TradeFlow – Motor de estrategias")
    logger.info("  Símbolos: %s", ", ".join(cfg.symbols))
    logger.info("  Estrategias: %s", ", ".join(c.config_id for c in configs))
    logger.info("  Intervalos: %s min", ", ".join(str(i) for i in intervals))
    logger.info("  Modo: %s", "LIVE" if cfg.live_trading else "simulado")
    logger.info("=" * 60)

    # ── Persistencia ──
    db: Optional[DatabaseManager] = None
    repository: ITradeRepository
    if cfg.db_enabled:
        db = DatabaseManager(cfg)
        await db.initialize()
        repository = SqlTradeRepository(db, test_case=cfg.test_case)
        logger.info("  Database: MySQL conectada (%s@%s/%s)", cfg.db_user, cfg.db_host, cfg.db_name)
    else:
        repository = InMemoryTradeRepository()
        logger.info("  Database: Deshabilitada (trades solo en memoria)")

    rest = KrakenRestClient(
        base_url=cfg.kraken_rest_url,
        api_key=cfg.kraken_api_key,
        api_secret=cfg.kraken_api_secret,
        timeout=cfg.kraken_request_timeout,
    )
    event_bus = EventBus(max_queue_size=cfg.event_bus_max_queue_size)

    coordinator = EngineCoordinator(
        configs,
        cfg.symbols,
        event_bus,
        repository,
        rest,
        order_executor=rest if cfg.live_trading else None,
        persistence_retry=RetryPolicy(
            max_attempts=cfg.persistence_retry_attempts,
            base_delay=cfg.persistence_retry_base_delay,
            max_delay=cfg.persistence_retry_max_delay,
        ),
        test_case=cfg.test_case,
    )

    ws_client = KrakenWebSocketClient(
        event_bus,
        cfg.symbols,
        intervals,
        url=cfg.kraken_ws_url,
        reconnect_policy=RetryPolicy(
            max_attempts=cfg.ws_reconnect_max_attempts,
            base_delay=cfg.ws_reconnect_base_delay,
            max_delay=cfg.ws_reconnect_max_delay,
        ),
        heartbeat_interval=cfg.ws_heartbeat_interval,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.debug("Señal %s no soportada en esta plataforma", sig)

    try:
        active = await coordinator.start()
        if active == 0:
            logger.error("❌ Ningún pipeline pudo arrancar, saliendo")
            return

        await ws_client.start()
        logger.info("✓ Todos los componentes iniciados correctamente")

        stop_wait = asyncio.create_task(stop_event.wait(), name="stop-signal")
        transport_wait = asyncio.create_task(ws_client.wait_stopped(), name="transport-stopped")
        done, pending = await asyncio.wait(
            {stop_wait, transport_wait}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        if transport_wait in done:
            logger.error("❌ Transporte de mercado perdido, iniciando shutdown")
    finally:
        logger.info("Iniciando shutdown...")
        await ws_client.stop()
        await coordinator.stop()
        if db is not None:
            await db.close()
            logger.info("  Database: Conexión cerrada")
        logger.info("✓ Shutdown completo")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
