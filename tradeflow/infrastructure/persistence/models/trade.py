"""
TradeFlow – Trade ORM Model
===========================
Tabla `trades`: espejo durable de las posiciones de cada configuración.

DECISIONES:
- status: "open" | "closed".
- Numeric(20, 8) para precios y cantidades.
- opened_at / closed_at como epoch en segundos con decimales (Float).
- La clave lógica de una posición abierta es
  (symbol, config_id, test_case) con closed_at NULL.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from tradeflow.domain.repositories.trade_repository import OpenTradeRecord, StoredOpenTrade
from tradeflow.infrastructure.persistence.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TradeModel(Base):
    """Modelo ORM de un trade (abierto o cerrado)."""

    __tablename__ = "trades"

    # ─── Primary Key ──────────────────────────────────────────────────
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )

    # ─── Identidad ────────────────────────────────────────────────────
    portfolio_id: Mapped[int] = mapped_column(Integer, nullable=False)
    config_id: Mapped[str] = mapped_column(String(64), nullable=False)
    test_case: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False, default="long")
    status: Mapped[str] = mapped_column(String(8), nullable=False, default="open")

    # ─── Precios / cantidades ─────────────────────────────────────────
    entry_price: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    peak_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 8), default=None)
    exit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 8), default=None)

    # ─── Resultado ────────────────────────────────────────────────────
    pnl: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 8), default=None)
    pnl_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 5), default=None)
    reason: Mapped[Optional[str]] = mapped_column(String(32), default=None)
    notes: Mapped[Optional[str]] = mapped_column(String(255), default=None)

    # ─── Timing ───────────────────────────────────────────────────────
    opened_at: Mapped[float] = mapped_column(Float, nullable=False)
    closed_at: Mapped[Optional[float]] = mapped_column(Float, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_trades_open_lookup", "symbol", "config_id", "test_case", "closed_at"),
        Index("idx_trades_portfolio_status", "portfolio_id", "status"),
    )

    # ─── Conversión ───────────────────────────────────────────────────

    @classmethod
    def from_record(cls, record: OpenTradeRecord) -> "TradeModel":
        return cls(
            portfolio_id=record.portfolio_id,
            config_id=record.config_id,
            test_case=record.test_case,
            symbol=record.symbol,
            side=record.side,
            status="open",
            entry_price=Decimal(str(record.entry_price)),
            amount=Decimal(str(record.amount)),
            peak_price=Decimal(str(record.peak_price)),
            notes=record.notes[:255] if record.notes else None,
            opened_at=record.opened_at,
        )

    def to_stored(self) -> StoredOpenTrade:
        return StoredOpenTrade(
            trade_id=self.id,
            symbol=self.symbol,
            entry_price=float(self.entry_price),
            amount=float(self.amount),
            opened_at=float(self.opened_at),
            peak_price=float(self.peak_price) if self.peak_price is not None else None,
            notes=self.notes or "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "config_id": self.config_id,
            "test_case": self.test_case,
            "symbol": self.symbol,
            "side": self.side,
            "status": self.status,
            "entry_price": float(self.entry_price),
            "amount": float(self.amount),
            "peak_price": float(self.peak_price) if self.peak_price is not None else None,
            "exit_price": float(self.exit_price) if self.exit_price is not None else None,
            "pnl": float(self.pnl) if self.pnl is not None else None,
            "pnl_percentage": float(self.pnl_percentage) if self.pnl_percentage is not None else None,
            "reason": self.reason,
            "notes": self.notes,
            "opened_at": self.opened_at,
            "closed_at": self.closed_at,
        }

    def __repr__(self) -> str:
        return f"<Trade {self.id} {self.symbol} {self.status} portfolio={self.portfolio_id}>"
