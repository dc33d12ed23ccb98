"""
TradeFlow – Trade Repository (Async MySQL)
==========================================
Implementación de ITradeRepository sobre SQLAlchemy async.

SESIONES:
  - Cada operación abre su propia sesión transaccional (commit al salir).
  - Las llamadas son idempotentes a nivel de fila: un reintento de
    update_trade reescribe los mismos valores.

MAPEO DE ERRORES:
  - OperationalError / conexión invalidada → TransientPersistenceError
  - cualquier otro SQLAlchemyError         → PersistenceError
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tradeflow.domain.exceptions.domain_errors import (
    PersistenceError,
    TransientPersistenceError,
)
from tradeflow.domain.repositories.trade_repository import (
    ITradeRepository,
    OpenTradeRecord,
    StoredOpenTrade,
)
from tradeflow.infrastructure.persistence.database import DatabaseManager
from tradeflow.infrastructure.persistence.models.trade import TradeModel
from tradeflow.shared.logging.logger import get_logger

logger = get_logger("trade_repository")

# Columnas actualizables vía update_trade
_UPDATABLE = frozenset({
    "status",
    "exit_price",
    "closed_at",
    "pnl",
    "pnl_percentage",
    "reason",
    "peak_price",
    "notes",
})
_DECIMAL_FIELDS = frozenset({"exit_price", "pnl", "pnl_percentage", "peak_price"})


class SqlTradeRepository(ITradeRepository):
    """
    Repositorio async de trades.

    USO:
        repo = SqlTradeRepository(db_manager, test_case="default")
        trade_id = await repo.insert_open_trade(record)
        await repo.update_trade(trade_id, {"status": "closed", ...})
    """

    def __init__(self, db: DatabaseManager, test_case: str = "default") -> None:
        self._db = db
        self._test_case = test_case

    # ════════════════════════════════════════════════════════════════
    #  CREATE
    # ════════════════════════════════════════════════════════════════

    async def insert_open_trade(self, record: OpenTradeRecord) -> int:
        async with self._session("insert_open_trade") as session:
            model = TradeModel.from_record(record)
            session.add(model)
            await session.flush()
            trade_id = model.id

        logger.debug(
            "Trade abierto guardado: id=%d %s portfolio=%d @ %.5f",
            trade_id, record.symbol, record.portfolio_id, record.entry_price,
        )
        return trade_id

    # ════════════════════════════════════════════════════════════════
    #  UPDATE
    # ════════════════════════════════════════════════════════════════

    async def update_trade(self, trade_id: int, fields: Dict[str, Any]) -> None:
        values = self._to_column_values(fields)
        if not values:
            return

        async with self._session("update_trade") as session:
            result = await session.execute(
                update(TradeModel).where(TradeModel.id == trade_id).values(**values)
            )
            if result.rowcount == 0:
                raise PersistenceError(f"Trade {trade_id} no existe")

    # ════════════════════════════════════════════════════════════════
    #  READ
    # ════════════════════════════════════════════════════════════════

    async def query_open_trade_id(
        self,
        symbol: str,
        config_id: str,
    ) -> Optional[Tuple[int, Optional[float]]]:
        async with self._session("query_open_trade_id") as session:
            result = await session.execute(
                select(TradeModel.id, TradeModel.peak_price)
                .where(
                    TradeModel.symbol == symbol,
                    TradeModel.config_id == config_id,
                    TradeModel.test_case == self._test_case,
                    TradeModel.closed_at.is_(None),
                )
                .order_by(TradeModel.opened_at.desc())
                .limit(1)
            )
            row = result.first()

        if row is None:
            return None
        trade_id, peak = row
        return trade_id, float(peak) if peak is not None else None

    async def find_open_trades(self, config_id: str) -> List[StoredOpenTrade]:
        async with self._session("find_open_trades") as session:
            result = await session.execute(
                select(TradeModel)
                .where(
                    TradeModel.config_id == config_id,
                    TradeModel.test_case == self._test_case,
                    TradeModel.closed_at.is_(None),
                )
                .order_by(TradeModel.opened_at)
            )
            models = result.scalars().all()
        return [m.to_stored() for m in models]

    # ─── Internos ─────────────────────────────────────────────────────

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Sesión con traducción de errores de SQLAlchemy a errores de dominio."""
        try:
            async with self._db.session() as session:
                yield session
        except OperationalError as exc:
            raise TransientPersistenceError(f"{operation}: {exc.orig or exc}") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise TransientPersistenceError(f"{operation}: conexión perdida") from exc
            raise PersistenceError(f"{operation}: {exc.orig or exc}") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{operation}: {exc}") from exc

    @staticmethod
    def _to_column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for name, value in fields.items():
            if name not in _UPDATABLE:
                logger.warning("update_trade: campo ignorado '%s'", name)
                continue
            if name in _DECIMAL_FIELDS and value is not None:
                value = Decimal(str(value))
            values[name] = value
        return values
