"""
TradeFlow – Engine Coordinator
==============================
Ejecuta N configuraciones de estrategia en paralelo sobre el mismo feed.

- Un StrategyPipeline por configuración; no comparten estado mutable.
- Bootstrap concurrente: si un pipeline falla (BootstrapError) se aborta
  SOLO ese pipeline; los demás arrancan igual.
- Cada pipeline tiene su propia suscripción al tópico "market".
- stop(): apaga todos los pipelines en paralelo; cada fallo se loguea.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

from tradeflow.application.ports.market_data_provider import IMarketDataProvider
from tradeflow.application.ports.order_executor import IOrderExecutor
from tradeflow.application.use_cases.strategy_pipeline import StrategyPipeline
from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.exceptions.domain_errors import BootstrapError, ValidationError
from tradeflow.domain.repositories.trade_repository import ITradeRepository
from tradeflow.infrastructure.external.event_bus import MARKET_TOPIC, EventBus
from tradeflow.shared.logging.logger import get_logger
from tradeflow.shared.retry import RetryPolicy

logger = get_logger("engine_coordinator")


class EngineCoordinator:
    """Dueño de todos los pipelines del proceso."""

    def __init__(
        self,
        configs: Iterable[StrategyConfig],
        symbols: Sequence[str],
        event_bus: EventBus,
        repository: ITradeRepository,
        market_data: IMarketDataProvider,
        *,
        order_executor: Optional[IOrderExecutor] = None,
        persistence_retry: Optional[RetryPolicy] = None,
        bootstrap_retry: Optional[RetryPolicy] = None,
        test_case: str = "default",
    ) -> None:
        self._symbols = list(symbols)
        self._event_bus = event_bus
        self._pipelines: List[StrategyPipeline] = []
        self._active: List[StrategyPipeline] = []
        self._tasks: Dict[str, asyncio.Task] = {}

        seen = set()
        for config in configs:
            if config.config_id in seen:
                raise ValidationError(
                    f"Configuración duplicada: {config.config_id}",
                    field="config_id",
                    value=config.config_id,
                )
            seen.add(config.config_id)
            self._pipelines.append(
                StrategyPipeline(
                    config,
                    repository,
                    market_data,
                    order_executor=order_executor,
                    persistence_retry=persistence_retry,
                    bootstrap_retry=bootstrap_retry,
                    test_case=test_case,
                )
            )

    @property
    def pipelines(self) -> List[StrategyPipeline]:
        return list(self._pipelines)

    @property
    def active_pipelines(self) -> List[StrategyPipeline]:
        return list(self._active)

    # ─── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> int:
        """Bootstrap + suscripción + arranque. Retorna pipelines activos."""
        results = await asyncio.gather(
            *(p.bootstrap(self._symbols) for p in self._pipelines),
            return_exceptions=True,
        )

        for pipeline, result in zip(self._pipelines, results):
            if isinstance(result, BootstrapError):
                logger.error("❌ Pipeline %s abortado: %s", pipeline.config_id, result)
                continue
            if isinstance(result, BaseException):
                logger.error(
                    "❌ Pipeline %s abortado por error inesperado: %s",
                    pipeline.config_id, result, exc_info=result,
                )
                continue

            queue = await self._event_bus.subscribe(
                MARKET_TOPIC, f"pipeline:{pipeline.config_id}"
            )
            self._tasks[pipeline.config_id] = asyncio.create_task(
                pipeline.run(queue), name=f"pipeline-{pipeline.config_id}"
            )
            self._active.append(pipeline)

        logger.info(
            "EngineCoordinator: %d/%d pipelines activos sobre %d símbolos",
            len(self._active), len(self._pipelines), len(self._symbols),
        )
        return len(self._active)

    async def stop(self) -> None:
        """Apagar todos los pipelines: drenar, liquidar, cancelar loops."""
        logger.info("Deteniendo EngineCoordinator...")
        await self._event_bus.unsubscribe_all(MARKET_TOPIC)

        results = await asyncio.gather(
            *(p.shutdown() for p in self._active),
            return_exceptions=True,
        )
        for pipeline, result in zip(self._active, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Fallo al apagar pipeline %s: %s",
                    pipeline.config_id, result, exc_info=result,
                )

        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        logger.info("EngineCoordinator detenido")

    @property
    def stats(self) -> dict:
        return {
            "symbols": self._symbols,
            "pipelines": {p.config_id: p.stats for p in self._pipelines},
            "active": [p.config_id for p in self._active],
        }
