"""
TradeFlow – Strategy Pipeline
=============================
Instancia completa del motor para UNA configuración de estrategia.

FLUJO:
  EventBus (tópico "market")
       │
       ▼
  StrategyPipeline.run(queue)  ◄── enruta cada evento a la cola de su símbolo
       │
       ├── worker BTC/USD ─┐
       ├── worker ETH/USD ─┼─▸ on_bar_event / on_tick_event
       └── worker ...     ─┘
                │
                ├── BarEvent:
                │     CandleAggregator.ingest()
                │        ├── STALE / UNCHANGED → nada
                │        ├── CLOSED → IndicatorEngine.recompute()
                │        └── UPDATED / CLOSED →
                │              PositionLedger.update_position()  (salida / mark)
                │              PositionLedger.try_open()         (entrada)
                │
                └── TickEvent:
                      CandleAggregator.update_tick()  (solo último precio)
                      PositionLedger.update_position()

Las barras de otro intervalo (el feed trae todos los intervalos activos) se
descartan al enrutar.

ORDEN Y CONCURRENCIA:
- Un worker y un asyncio.Lock por símbolo → los eventos de un mismo símbolo
  se procesan estrictamente en orden y de a uno.
- Símbolos distintos avanzan en paralelo (se suspenden solo en I/O de
  persistencia u órdenes).

SHUTDOWN:
- Se deja de enrutar, se descarta el backlog, se espera a que terminen los
  handlers en vuelo (aperturas incluidas) y luego se liquida todo.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Iterable, Optional, Union

from tradeflow.application.ports.market_data_provider import IMarketDataProvider
from tradeflow.application.ports.order_executor import IOrderExecutor
from tradeflow.application.services.candle_aggregator import CandleAggregator, IngestResult
from tradeflow.application.services.indicator_engine import IndicatorEngine
from tradeflow.application.services.position_ledger import ClosedPosition, PositionLedger
from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.exceptions.domain_errors import BootstrapError
from tradeflow.domain.repositories.trade_repository import ITradeRepository
from tradeflow.domain.strategies.registry import resolve_strategy
from tradeflow.domain.value_objects.market_events import BarEvent, TickEvent
from tradeflow.shared.logging.logger import get_logger
from tradeflow.shared.retry import RetryPolicy

logger = get_logger("strategy_pipeline")

MarketEvent = Union[BarEvent, TickEvent]


class StrategyPipeline:
    """Agregador + indicadores + ledger de una configuración."""

    def __init__(
        self,
        config: StrategyConfig,
        repository: ITradeRepository,
        market_data: IMarketDataProvider,
        *,
        order_executor: Optional[IOrderExecutor] = None,
        persistence_retry: Optional[RetryPolicy] = None,
        bootstrap_retry: Optional[RetryPolicy] = None,
        test_case: str = "default",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._repo = repository
        self._market_data = market_data
        self._bootstrap_retry = bootstrap_retry or RetryPolicy()

        self.strategy = resolve_strategy(config.strategy_type)
        self.aggregator = CandleAggregator(config.candle_capacity)
        self.indicators = IndicatorEngine(config)
        self.ledger = PositionLedger(
            config,
            self.strategy,
            repository,
            order_executor=order_executor,
            retry_policy=persistence_retry,
            test_case=test_case,
            clock=clock,
        )

        self._locks: Dict[str, asyncio.Lock] = {}
        self._symbol_queues: Dict[str, asyncio.Queue] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self._running = False
        self._accepting = True
        self._bootstrapped = False
        self._processed = 0

    @property
    def config(self) -> StrategyConfig:
        return self._config

    @property
    def config_id(self) -> str:
        return self._config.config_id

    @property
    def is_running(self) -> bool:
        return self._running

    # ════════════════════════════════════════════════════════════════
    #  BOOTSTRAP
    # ════════════════════════════════════════════════════════════════

    async def bootstrap(self, symbols: Iterable[str]) -> None:
        """
        Sembrar portafolio, historial e indicadores, y restaurar posiciones.

        Raises:
            BootstrapError: si falta el balance inicial, algún histórico o la
            lectura de trades abiertos. Solo aborta ESTE pipeline.
        """
        cfg = self._config
        retry = self._bootstrap_retry

        try:
            portfolio = await retry.run(
                lambda: self._market_data.get_starting_portfolio(cfg),
                label=f"starting_portfolio[{cfg.config_id}]",
            )
        except Exception as exc:
            raise BootstrapError(
                f"No se pudo obtener el balance inicial: {exc}", config_id=cfg.config_id
            ) from exc
        self.ledger.portfolio = portfolio

        for symbol in symbols:
            try:
                candles = await retry.run(
                    lambda s=symbol: self._market_data.get_historical_candles(
                        s, cfg.interval_minutes, cfg.history_limit
                    ),
                    label=f"history[{cfg.config_id}:{symbol}]",
                )
            except Exception as exc:
                raise BootstrapError(
                    f"No se pudo obtener el histórico de {symbol}: {exc}",
                    config_id=cfg.config_id,
                ) from exc

            self.aggregator.seed(symbol, candles)
            self.indicators.recompute(symbol, self.aggregator.history(symbol))

        try:
            open_trades = await retry.run(
                lambda: self._repo.find_open_trades(cfg.config_id),
                label=f"open_trades[{cfg.config_id}]",
            )
        except Exception as exc:
            raise BootstrapError(
                f"No se pudieron leer los trades abiertos: {exc}", config_id=cfg.config_id
            ) from exc
        self.ledger.restore(open_trades)

        self._bootstrapped = True
        logger.info(
            "✓ Pipeline %s listo (%s, balance=%.2f, capacidad=%d velas)",
            cfg.config_id, self.strategy.kind or cfg.strategy_type,
            portfolio.balance, cfg.candle_capacity,
        )

    # ════════════════════════════════════════════════════════════════
    #  HANDLERS
    # ════════════════════════════════════════════════════════════════

    async def on_bar_event(self, event: BarEvent) -> IngestResult:
        async with self._lock_for(event.symbol):
            result = self.aggregator.ingest(event)
            if result in (IngestResult.STALE, IngestResult.UNCHANGED):
                return result

            symbol = event.symbol
            if result is IngestResult.CLOSED:
                self.indicators.recompute(symbol, self.aggregator.history(symbol))

            snapshot = self.indicators.get(symbol)
            price = event.close
            closed = await self.ledger.update_position(symbol, snapshot, price)
            if closed is None:
                await self.ledger.try_open(symbol, snapshot, price)

            self._processed += 1
            return result

    async def on_tick_event(self, event: TickEvent) -> Optional[ClosedPosition]:
        async with self._lock_for(event.symbol):
            self.aggregator.update_tick(event)
            self._processed += 1
            return await self.ledger.update_position(
                event.symbol, self.indicators.get(event.symbol), event.price
            )

    async def handle(self, event: MarketEvent) -> None:
        if isinstance(event, BarEvent):
            await self.on_bar_event(event)
        elif isinstance(event, TickEvent):
            await self.on_tick_event(event)
        else:
            logger.warning("[%s] Evento desconocido ignorado: %r", self.config_id, event)

    # ════════════════════════════════════════════════════════════════
    #  LOOP
    # ════════════════════════════════════════════════════════════════

    async def run(self, queue: asyncio.Queue) -> None:
        """
        Consumir la cola del EventBus y enrutar por símbolo.
        Espera en queue.get() con timeout para permitir un shutdown limpio.
        """
        self._running = True
        logger.info("Pipeline %s consumiendo eventos", self.config_id)
        while self._running:
            try:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                queue.task_done()
                self.dispatch(event)
            except asyncio.CancelledError:
                logger.info("Pipeline %s cancelado", self.config_id)
                raise
            except Exception as e:
                logger.error("[%s] Error enrutando evento: %s", self.config_id, e, exc_info=True)

    def dispatch(self, event: MarketEvent) -> None:
        """Encolar `event` en el worker de su símbolo."""
        if not self._accepting:
            return
        if isinstance(event, BarEvent) and event.interval not in (None, self._config.interval_minutes):
            return
        symbol = getattr(event, "symbol", None)
        if not symbol:
            logger.warning("[%s] Evento sin símbolo ignorado: %r", self.config_id, event)
            return
        queue = self._symbol_queues.get(symbol)
        if queue is None:
            queue = asyncio.Queue()
            self._symbol_queues[symbol] = queue
            self._workers[symbol] = asyncio.create_task(
                self._symbol_worker(symbol, queue),
                name=f"pipeline-{self.config_id}-{symbol}",
            )
        queue.put_nowait(event)

    async def _symbol_worker(self, symbol: str, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                await self.handle(event)
            except Exception as e:
                logger.error(
                    "[%s] Error procesando evento de %s: %s",
                    self.config_id, symbol, e, exc_info=True,
                )
            finally:
                queue.task_done()

    # ════════════════════════════════════════════════════════════════
    #  SHUTDOWN
    # ════════════════════════════════════════════════════════════════

    async def shutdown(self) -> list[ClosedPosition]:
        """Detener, drenar handlers en vuelo y liquidar posiciones."""
        self._accepting = False
        self._running = False

        # Backlog sin empezar → descartado
        dropped = 0
        for queue in self._symbol_queues.values():
            while True:
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                queue.task_done()
                dropped += 1
        if dropped:
            logger.info("[%s] %d eventos pendientes descartados", self.config_id, dropped)

        # Handlers en vuelo (aperturas incluidas) terminan su persistencia
        await asyncio.gather(*(q.join() for q in self._symbol_queues.values()))

        for task in self._workers.values():
            task.cancel()
        await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._workers.clear()

        prices = {s: self.aggregator.last_price(s) for s in self.aggregator.state.get_all_symbols()}
        closed = await self.ledger.close_all(prices)
        logger.info(
            "Pipeline %s detenido. Eventos procesados: %d, posiciones liquidadas: %d",
            self.config_id, self._processed, len(closed),
        )
        return closed

    # ─── Internos ─────────────────────────────────────────────────────

    def _lock_for(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[symbol] = lock
        return lock

    @property
    def stats(self) -> dict:
        return {
            "config_id": self.config_id,
            "strategy": self._config.strategy_type,
            "bootstrapped": self._bootstrapped,
            "running": self._running,
            "processed": self._processed,
            "symbols": self.aggregator.snapshot(),
            "ledger": self.ledger.stats,
        }
