"""
TradeFlow – In-Memory Trade Repository
======================================
ITradeRepository sin base de datos: modo sin MySQL (db_enabled=False)
y dobles de prueba.

`fail_with` permite inyectar fallos: se llama antes de cada operación
con su nombre y, si retorna una excepción, ésta se lanza.
"""

from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, List, Optional, Tuple

from tradeflow.domain.exceptions.domain_errors import PersistenceError
from tradeflow.domain.repositories.trade_repository import (
    ITradeRepository,
    OpenTradeRecord,
    StoredOpenTrade,
)

FailureHook = Callable[[str], Optional[Exception]]


class InMemoryTradeRepository(ITradeRepository):
    """Store de trades en un dict, con la misma semántica que el SQL."""

    def __init__(self, fail_with: Optional[FailureHook] = None) -> None:
        self._rows: Dict[int, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self.fail_with = fail_with
        self.calls: List[str] = []

    # ─── ITradeRepository ─────────────────────────────────────────────

    async def insert_open_trade(self, record: OpenTradeRecord) -> int:
        self._check("insert_open_trade")
        trade_id = next(self._ids)
        row = record.to_dict()
        row.update(
            id=trade_id,
            status="open",
            exit_price=None,
            closed_at=None,
            pnl=None,
            pnl_percentage=None,
            reason=None,
        )
        self._rows[trade_id] = row
        return trade_id

    async def update_trade(self, trade_id: int, fields: Dict[str, Any]) -> None:
        self._check("update_trade")
        row = self._rows.get(trade_id)
        if row is None:
            raise PersistenceError(f"Trade {trade_id} no existe")
        row.update(fields)

    async def query_open_trade_id(
        self,
        symbol: str,
        config_id: str,
    ) -> Optional[Tuple[int, Optional[float]]]:
        self._check("query_open_trade_id")
        matches = [
            row for row in self._rows.values()
            if row["symbol"] == symbol
            and row["config_id"] == config_id
            and row["closed_at"] is None
        ]
        if not matches:
            return None
        row = max(matches, key=lambda r: r["opened_at"])
        return row["id"], row["peak_price"]

    async def find_open_trades(self, config_id: str) -> List[StoredOpenTrade]:
        self._check("find_open_trades")
        rows = sorted(
            (
                row for row in self._rows.values()
                if row["config_id"] == config_id and row["closed_at"] is None
            ),
            key=lambda r: r["opened_at"],
        )
        return [
            StoredOpenTrade(
                trade_id=row["id"],
                symbol=row["symbol"],
                entry_price=row["entry_price"],
                amount=row["amount"],
                opened_at=row["opened_at"],
                peak_price=row["peak_price"],
                notes=row.get("notes", ""),
            )
            for row in rows
        ]

    # ─── Inspección ───────────────────────────────────────────────────

    def get(self, trade_id: int) -> Optional[Dict[str, Any]]:
        row = self._rows.get(trade_id)
        return dict(row) if row is not None else None

    def all(self) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._rows.values()]

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_with is not None:
            error = self.fail_with(operation)
            if error is not None:
                raise error
