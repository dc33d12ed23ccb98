"""
TradeFlow – Candle Aggregator
=============================
Convierte el stream de barras (at-least-once, con duplicados y atrasos) en
un historial por símbolo estrictamente creciente y acotado.

ALGORITMO (ingest de una barra):
  1. Sin vela en formación        → la barra pasa a ser la vela en formación.
  2. ts ≤ última vela cerrada      → STALE (descartada en silencio).
     ts < vela en formación        → STALE.
  3. ts == vela en formación       → se reemplaza si cambió high/low/close/
                                     volume (UPDATED); si no, UNCHANGED.
  4. ts > vela en formación        → la vela en formación se cierra, entra al
                                     buffer (FIFO) y la barra nueva pasa a
                                     formarse (CLOSED).

Solo CLOSED habilita el recálculo de indicadores: los indicadores se
definen únicamente sobre velas cerradas.

Los ticks NO tocan el buffer; solo refrescan el último precio.

Operación O(1) – sin I/O, sin await.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional

from tradeflow.application.state.market_state import MarketStateManager
from tradeflow.domain.entities.candle import Candle
from tradeflow.domain.value_objects.market_events import BarEvent, TickEvent
from tradeflow.shared.logging.logger import get_logger

logger = get_logger("candle_aggregator")


class IngestResult(str, Enum):
    STALE = "stale"
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    CLOSED = "closed"


class CandleAggregator:
    """
    Agregador de velas por símbolo.

    Uso:
        aggregator = CandleAggregator(capacity=200)
        if aggregator.ingest(bar) is IngestResult.CLOSED:
            # recalcular indicadores con aggregator.history(symbol)
    """

    def __init__(self, capacity: int, state: Optional[MarketStateManager] = None) -> None:
        self._state = state or MarketStateManager(capacity)

    @property
    def state(self) -> MarketStateManager:
        return self._state

    @property
    def capacity(self) -> int:
        return self._state.capacity

    # ─── Bootstrap ────────────────────────────────────────────────────

    def seed(self, symbol: str, candles: Iterable[Candle]) -> int:
        """
        Sembrar historial. La última vela queda como vela en formación.

        Se ordena por timestamp y se descartan duplicados (gana la última).
        Retorna cuántas velas cerradas quedaron en el buffer.
        """
        by_ts = {}
        for candle in candles:
            by_ts[candle.timestamp] = candle
        ordered = [by_ts[ts] for ts in sorted(by_ts)]

        state = self._state.get_or_create(symbol)
        state.candles.clear()
        state.forming = None
        if not ordered:
            return 0

        *closed, forming = ordered
        state.candles.extend(closed[-state.capacity:] if closed else [])
        state.forming = forming
        state.last_price = forming.close
        state.last_price_time = forming.timestamp

        logger.info(
            "Historial sembrado para '%s': %d velas cerradas + 1 en formación",
            symbol, len(state.candles),
        )
        return len(state.candles)

    # ─── Stream ───────────────────────────────────────────────────────

    def ingest(self, event: BarEvent) -> IngestResult:
        candle = event.to_candle()
        state = self._state.get_or_create(event.symbol)

        # ── CASO 1: primera barra del símbolo ──
        if state.forming is None:
            last_closed = state.last_closed_timestamp
            if last_closed is not None and candle.timestamp <= last_closed:
                return self._stale(state, candle)
            state.forming = candle
            self._touch_price(state, candle)
            return IngestResult.UPDATED

        forming = state.forming
        last_closed = state.last_closed_timestamp

        # ── CASO 2: duplicado / atrasado ──
        if (last_closed is not None and candle.timestamp <= last_closed) or (
            candle.timestamp < forming.timestamp
        ):
            return self._stale(state, candle)

        # ── CASO 3: misma vela ──
        if candle.timestamp == forming.timestamp:
            if forming.same_values(candle):
                return IngestResult.UNCHANGED
            state.forming = candle
            self._touch_price(state, candle)
            return IngestResult.UPDATED

        # ── CASO 4: vela nueva → cerrar la anterior ──
        state.candles.append(forming)
        state.forming = candle
        state.total_bars += 1
        self._touch_price(state, candle)

        logger.debug(
            "Vela cerrada: %s ts=%.0f O=%.5f H=%.5f L=%.5f C=%.5f V=%.4f",
            forming.symbol,
            forming.timestamp,
            forming.open,
            forming.high,
            forming.low,
            forming.close,
            forming.volume,
        )
        return IngestResult.CLOSED

    def update_tick(self, event: TickEvent) -> None:
        """Refrescar último precio. No modifica el buffer."""
        state = self._state.get_or_create(event.symbol)
        state.last_price = event.price
        state.last_price_time = event.timestamp
        state.total_ticks += 1

    # ─── Consultas ────────────────────────────────────────────────────

    def history(self, symbol: str) -> List[Candle]:
        return self._state.get_candles(symbol)

    def forming(self, symbol: str) -> Optional[Candle]:
        state = self._state.get(symbol)
        return state.forming if state else None

    def last_price(self, symbol: str) -> float:
        return self._state.get_last_price(symbol)

    def snapshot(self) -> dict:
        return self._state.snapshot()

    # ─── Internos ─────────────────────────────────────────────────────

    @staticmethod
    def _touch_price(state, candle: Candle) -> None:
        state.last_price = candle.close
        state.last_price_time = candle.timestamp

    @staticmethod
    def _stale(state, candle: Candle) -> IngestResult:
        state.stale_events += 1
        logger.debug(
            "Barra descartada (stale) %s ts=%.0f", candle.symbol, candle.timestamp
        )
        return IngestResult.STALE
