"""
TradeFlow – Position Ledger
===========================
Dueño exclusivo de las posiciones abiertas de UN pipeline.

═══════════════════════════════════════════════════════════════
            CICLO DE VIDA DE UNA POSICIÓN
═══════════════════════════════════════════════════════════════

    try_open(symbol, indicators, price)
        │
        ├── ¿ya hay posición / max_positions / indicadores no listos? → no-op
        ├── estrategia.evaluate_entry()  → rechazo con razón (log)
        ├── sizing (RiskCalculator)
        ├── [live] orden de compra       → fallo = abortar sin cambios
        │       └── timeout = además unreconciled (pudo ejecutarse)
        ├── insert_open_trade (reintentos)
        │       └── fallo = abortar sin cambios (rollback)
        └── instalar Position localmente
                    │
      update_position(symbol, indicators, price)   ← barras y ticks
                    │
        ├── subir pico
        ├── estrategia.evaluate_exit()
        │       ├── exit → _close(): [live] venta (fallo se loguea),
        │       │          PnL neto, balance, quitar Position,
        │       │          update_trade (fallo → log + unreconciled)
        │       └── hold → mark_price(): persistir pnl/pico (best-effort)
                    │
      close_all()  ← shutdown: liquidación best-effort de todo

ATOMICIDAD EN APERTURA:
    La Position solo se instala DESPUÉS de persistir. Si el store falla,
    el ledger queda idéntico al estado previo.

CONCURRENCIA:
    Símbolos distintos pueden abrir en paralelo. Las aperturas en vuelo se
    reservan en `_pending_opens` para que max_positions se respete aun
    cuando varias esperan al store a la vez.

PICO:
    Fuente canónica = store al reiniciar (restore), memoria después.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set

from tradeflow.application.ports.order_executor import IOrderExecutor
from tradeflow.domain.entities.portfolio import Portfolio
from tradeflow.domain.entities.position import Position
from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.exceptions.domain_errors import (
    OrderPlacementError,
    PersistenceError,
    TransientPersistenceError,
    TransportError,
)
from tradeflow.domain.repositories.trade_repository import (
    ITradeRepository,
    OpenTradeRecord,
    StoredOpenTrade,
)
from tradeflow.domain.services.risk_calculator import PnlBreakdown, RiskCalculator
from tradeflow.domain.strategies.base import Strategy
from tradeflow.domain.value_objects.decision import ExitReason
from tradeflow.domain.value_objects.indicator_snapshot import IndicatorSnapshot
from tradeflow.shared.logging.logger import get_logger
from tradeflow.shared.retry import RetryPolicy

logger = get_logger("position_ledger")

# Fallos del executor que NO deben cortar el flujo del ledger
_ORDER_FAILURES = (OrderPlacementError, TransportError, asyncio.TimeoutError)


def _outcome_unknown(exc: BaseException) -> bool:
    """True si la orden pudo ejecutarse pese al error (timeout, respuesta ilegible)."""
    if isinstance(exc, OrderPlacementError):
        return exc.uncertain
    return True


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass(frozen=True, slots=True)
class ClosedPosition:
    """Resultado de un cierre."""

    symbol: str
    entry_price: float
    exit_price: float
    quantity: float
    reason: ExitReason
    pnl: PnlBreakdown
    trade_id: Optional[int]
    persisted: bool

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "quantity": self.quantity,
            "reason": self.reason.value,
            "pnl": self.pnl.to_dict(),
            "trade_id": self.trade_id,
            "persisted": self.persisted,
        }


class PositionLedger:
    """
    Libro de posiciones de una configuración.

    Responsabilidades:
      1. Abrir posiciones (entrada + sizing + persistencia atómica)
      2. Cerrar posiciones (salida + PnL/fees + balance + persistencia)
      3. Mark-to-market y tracking del pico
      4. Liquidación total al apagar
    """

    def __init__(
        self,
        config: StrategyConfig,
        strategy: Strategy,
        repository: ITradeRepository,
        *,
        portfolio: Optional[Portfolio] = None,
        order_executor: Optional[IOrderExecutor] = None,
        retry_policy: Optional[RetryPolicy] = None,
        test_case: str = "default",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._strategy = strategy
        self._repo = repository
        self._portfolio = portfolio or Portfolio(config.trade_balance)
        self._orders = order_executor
        self._retry = retry_policy or RetryPolicy()
        self._test_case = test_case
        self._clock = clock

        self._pending_opens: Set[str] = set()
        self._unreconciled: List[Dict[str, Any]] = []
        self._stats = _LedgerStats()

        if config.live_trading and order_executor is None:
            logger.warning(
                "[%s] live_trading activo sin order executor – solo se simulará",
                config.config_id,
            )

    # ─── Propiedades ──────────────────────────────────────────────────

    @property
    def config_id(self) -> str:
        return self._config.config_id

    @property
    def portfolio(self) -> Portfolio:
        return self._portfolio

    @portfolio.setter
    def portfolio(self, portfolio: Portfolio) -> None:
        self._portfolio = portfolio

    @property
    def unreconciled(self) -> List[Dict[str, Any]]:
        return list(self._unreconciled)

    @property
    def pending_opens(self) -> int:
        return len(self._pending_opens)

    def get_position(self, symbol: str) -> Optional[Position]:
        return self._portfolio.get(symbol)

    @property
    def _live(self) -> bool:
        return self._config.live_trading and self._orders is not None

    # ════════════════════════════════════════════════════════════════
    #  1. APERTURA
    # ════════════════════════════════════════════════════════════════

    async def try_open(
        self,
        symbol: str,
        indicators: Optional[IndicatorSnapshot],
        price: float,
    ) -> Optional[Position]:
        """
        Intentar abrir una posición en `symbol` al precio `price`.

        Returns:
            La Position instalada, o None si no se abrió.
        """
        cfg = self._config

        # ── Guards ──
        if self._portfolio.has(symbol) or symbol in self._pending_opens:
            return None
        if self._portfolio.open_count + len(self._pending_opens) >= cfg.max_positions:
            logger.debug(
                "[%s] %s: máximo de posiciones alcanzado (%d)",
                cfg.config_id, symbol, cfg.max_positions,
            )
            self._stats.skipped_max_positions += 1
            return None
        if indicators is None:
            logger.debug("[%s] %s: indicadores no listos", cfg.config_id, symbol)
            return None
        if price <= 0:
            logger.debug("[%s] %s: sin precio válido", cfg.config_id, symbol)
            return None

        # ── Protocolo de entrada ──
        decision = self._strategy.evaluate_entry(indicators, cfg, price)
        if not decision.enter:
            logger.debug("[%s] %s: entrada rechazada – %s", cfg.config_id, symbol, decision.reason)
            self._stats.entries_rejected += 1
            return None

        quantity = RiskCalculator.position_size(
            self._portfolio.balance, price, indicators.atr, cfg
        )
        if quantity <= 0:
            logger.info(
                "[%s] %s: entrada aceptada pero tamaño nulo (balance=%.2f)",
                cfg.config_id, symbol, self._portfolio.balance,
            )
            return None

        self._pending_opens.add(symbol)
        try:
            return await self._open(symbol, price, quantity, decision.reason)
        finally:
            self._pending_opens.discard(symbol)

    async def _open(self, symbol: str, price: float, quantity: float, reason: str) -> Optional[Position]:
        cfg = self._config

        # ── [live] la orden va ANTES de tocar estado ──
        if self._live:
            try:
                await self._orders.submit_market_order(symbol, "buy", quantity)
            except _ORDER_FAILURES as exc:
                logger.error(
                    "[%s] %s: orden de compra fallida, apertura abortada: %s",
                    cfg.config_id, symbol, _describe(exc),
                )
                self._stats.order_failures += 1
                if _outcome_unknown(exc):
                    # la compra pudo ejecutarse sin que el ledger la registre
                    self._record_unreconciled(
                        "buy",
                        symbol,
                        None,
                        {"side": "buy", "quantity": quantity, "price": price},
                        exc,
                    )
                return None

        entry_time = self._clock()
        record = OpenTradeRecord(
            portfolio_id=cfg.portfolio_id,
            config_id=cfg.config_id,
            symbol=symbol,
            entry_price=price,
            amount=quantity,
            opened_at=entry_time,
            peak_price=price,
            notes=f"{cfg.strategy_type} {reason}",
            test_case=self._test_case,
        )

        try:
            trade_id = await self._persist(
                lambda: self._repo.insert_open_trade(record),
                label=f"insert_open_trade[{cfg.config_id}:{symbol}]",
            )
        except PersistenceError as exc:
            logger.error(
                "[%s] %s: no se pudo persistir la apertura, posición descartada: %s",
                cfg.config_id, symbol, exc,
            )
            self._stats.persistence_failures += 1
            if self._live:
                self._record_unreconciled("open", symbol, None, record.to_dict(), exc)
            return None

        position = Position(
            symbol=symbol,
            entry_price=price,
            quantity=quantity,
            strategy_label=cfg.strategy_type,
            entry_time=entry_time,
            peak_price=price,
            trade_id=trade_id,
            config_id=cfg.config_id,
        )
        self._portfolio.add(position)
        self._stats.opened += 1

        logger.info(
            "📈 [%s] Posición abierta %s qty=%.6f @ %.5f (trade_id=%s) – %s",
            cfg.config_id, symbol, quantity, price, trade_id, reason,
        )
        return position

    # ════════════════════════════════════════════════════════════════
    #  2. ACTUALIZACIÓN / CIERRE
    # ════════════════════════════════════════════════════════════════

    async def update_position(
        self,
        symbol: str,
        indicators: Optional[IndicatorSnapshot],
        price: float,
    ) -> Optional[ClosedPosition]:
        """Ruta de actualización: evaluar salida; si se mantiene, mark-to-market."""
        closed = await self.try_close(symbol, indicators, price)
        if closed is None and self._portfolio.has(symbol):
            await self.mark_price(symbol, price)
        return closed

    async def try_close(
        self,
        symbol: str,
        indicators: Optional[IndicatorSnapshot],
        price: float,
    ) -> Optional[ClosedPosition]:
        position = self._portfolio.get(symbol)
        if position is None or price <= 0:
            return None

        position.raise_peak(price)

        if indicators is None:
            logger.debug("[%s] %s: indicadores no listos para salida", self.config_id, symbol)
            return None

        decision = self._strategy.evaluate_exit(
            position, indicators, self._config, price, position.peak_price, now=self._clock()
        )
        if not decision.exit:
            logger.debug("[%s] %s: se mantiene (%s)", self.config_id, symbol, decision.reason.value)
            return None

        return await self._close(position, price, decision.reason)

    async def _close(self, position: Position, price: float, reason: ExitReason) -> ClosedPosition:
        cfg = self._config
        symbol = position.symbol

        # ── [live] venta: un fallo NO detiene el cierre local ──
        if self._live:
            try:
                await self._orders.submit_market_order(symbol, "sell", position.quantity)
            except _ORDER_FAILURES as exc:
                logger.error(
                    "[%s] %s: orden de venta falló, se cierra localmente (posible desync): %s",
                    cfg.config_id, symbol, _describe(exc),
                )
                self._stats.order_failures += 1
                self._record_unreconciled(
                    "sell",
                    symbol,
                    position.trade_id,
                    {"side": "sell", "quantity": position.quantity, "price": price},
                    exc,
                )

        pnl = RiskCalculator.realized_pnl(
            position.entry_price, price, position.quantity, cfg.fee_rate
        )
        self._portfolio.apply_realized(pnl.net)
        self._portfolio.remove(symbol)
        self._stats.closed += 1

        fields = {
            "status": "closed",
            "exit_price": price,
            "closed_at": self._clock(),
            "pnl": pnl.net,
            "pnl_percentage": pnl.net_pct,
            "reason": reason.value,
            "peak_price": position.peak_price,
        }

        persisted = True
        trade_id = position.trade_id
        try:
            trade_id = await self._resolve_trade_id(position)
            if trade_id is None:
                raise PersistenceError(f"sin trade abierto en el store para {symbol}")
            # el pico guardado puede superar al de memoria
            fields["peak_price"] = position.peak_price
            await self._persist(
                lambda: self._repo.update_trade(trade_id, fields),
                label=f"close_trade[{cfg.config_id}:{symbol}]",
            )
        except PersistenceError as exc:
            persisted = False
            self._stats.persistence_failures += 1
            self._record_unreconciled("close", symbol, trade_id, fields, exc)

        icon = "✅" if pnl.net >= 0 else "❌"
        logger.info(
            "%s [%s] Posición cerrada %s @ %.5f (%s) bruto=%.4f fees=%.4f neto=%.4f (%.2f%%) balance=%.2f",
            icon, cfg.config_id, symbol, price, reason.value,
            pnl.gross, pnl.fees, pnl.net, pnl.net_pct, self._portfolio.balance,
        )

        return ClosedPosition(
            symbol=symbol,
            entry_price=position.entry_price,
            exit_price=price,
            quantity=position.quantity,
            reason=reason,
            pnl=pnl,
            trade_id=trade_id,
            persisted=persisted,
        )

    async def mark_price(self, symbol: str, price: float) -> None:
        """Subir el pico y persistir PnL no realizado (best-effort)."""
        position = self._portfolio.get(symbol)
        if position is None or price <= 0:
            return

        position.raise_peak(price)
        pnl = RiskCalculator.realized_pnl(
            position.entry_price, price, position.quantity, self._config.fee_rate
        )
        try:
            trade_id = await self._resolve_trade_id(position)
            if trade_id is None:
                logger.warning("[%s] %s: sin trade abierto para mark-to-market", self.config_id, symbol)
                return
            fields = {
                "pnl": pnl.net,
                "pnl_percentage": pnl.net_pct,
                "peak_price": position.peak_price,
            }
            await self._persist(
                lambda: self._repo.update_trade(trade_id, fields),
                label=f"mark_price[{self.config_id}:{symbol}]",
            )
        except PersistenceError as exc:
            logger.warning(
                "[%s] %s: mark-to-market no persistido: %s", self.config_id, symbol, exc,
            )

    # ════════════════════════════════════════════════════════════════
    #  3. SHUTDOWN / RECUPERACIÓN
    # ════════════════════════════════════════════════════════════════

    async def close_all(self, prices: Optional[Mapping[str, float]] = None) -> List[ClosedPosition]:
        """
        Liquidar todas las posiciones al último precio conocido.

        Cada fallo se loguea y la liquidación sigue con el resto.
        """
        prices = prices or {}
        closed: List[ClosedPosition] = []
        positions = list(self._portfolio.positions())
        if positions:
            logger.info("[%s] Cerrando %d posiciones...", self.config_id, len(positions))

        for position in positions:
            price = prices.get(position.symbol) or position.entry_price
            try:
                closed.append(await self._close(position, price, ExitReason.SHUTDOWN))
            except Exception as exc:
                logger.error(
                    "[%s] %s: fallo al liquidar: %s",
                    self.config_id, position.symbol, exc, exc_info=True,
                )
        return closed

    def restore(self, trades: Iterable[StoredOpenTrade]) -> int:
        """Reinstalar posiciones abiertas leídas del store (pico incluido)."""
        restored = 0
        for trade in trades:
            if self._portfolio.has(trade.symbol):
                continue
            self._portfolio.add(
                Position(
                    symbol=trade.symbol,
                    entry_price=trade.entry_price,
                    quantity=trade.amount,
                    strategy_label=self._config.strategy_type,
                    entry_time=trade.opened_at,
                    peak_price=trade.peak_price,
                    trade_id=trade.trade_id,
                    config_id=self.config_id,
                )
            )
            restored += 1
        if restored:
            logger.info("[%s] %d posiciones restauradas desde el store", self.config_id, restored)
        return restored

    # ─── Internos ─────────────────────────────────────────────────────

    async def _persist(self, operation: Callable[[], Awaitable[Any]], label: str) -> Any:
        return await self._retry.run(
            operation, retry_on=(TransientPersistenceError,), label=label,
        )

    async def _resolve_trade_id(self, position: Position) -> Optional[int]:
        if position.trade_id is not None:
            return position.trade_id
        found = await self._persist(
            lambda: self._repo.query_open_trade_id(position.symbol, self.config_id),
            label=f"query_open_trade_id[{self.config_id}:{position.symbol}]",
        )
        if found is None:
            return None
        trade_id, stored_peak = found
        position.trade_id = trade_id
        if stored_peak is not None:
            position.raise_peak(stored_peak)
        return trade_id

    def _record_unreconciled(
        self,
        action: str,
        symbol: str,
        trade_id: Optional[int],
        fields: Dict[str, Any],
        error: Exception,
    ) -> None:
        entry = {
            "action": action,
            "symbol": symbol,
            "config_id": self.config_id,
            "trade_id": trade_id,
            "fields": dict(fields),
            "error": _describe(error),
        }
        self._unreconciled.append(entry)
        logger.error(
            "⚠️ [%s] %s: divergencia ledger/store (%s) trade_id=%s campos=%s – %s",
            self.config_id, symbol, action, trade_id, fields, error,
        )

    @property
    def stats(self) -> dict:
        return {
            **self._stats.to_dict(),
            "open_positions": self._portfolio.open_count,
            "pending_opens": len(self._pending_opens),
            "balance": round(self._portfolio.balance, 8),
            "unreconciled": len(self._unreconciled),
        }


class _LedgerStats:
    """Contadores internos del ledger."""

    __slots__ = (
        "opened",
        "closed",
        "entries_rejected",
        "skipped_max_positions",
        "order_failures",
        "persistence_failures",
    )

    def __init__(self) -> None:
        self.opened: int = 0
        self.closed: int = 0
        self.entries_rejected: int = 0
        self.skipped_max_positions: int = 0
        self.order_failures: int = 0
        self.persistence_failures: int = 0

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.__slots__}
