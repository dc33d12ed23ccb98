"""
TradeFlow – Value Objects: Decisions
====================================
Resultado del protocolo de estrategia. Un rechazo NO es un error: es una
decisión normal que lleva una razón legible para el log.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ExitReason(str, Enum):
    MIN_HOLD_TIME = "minHoldTime"
    HOLD_TIME = "holdTime"
    TAKE_PROFIT = "takeProfit"
    STOP_LOSS = "stopLoss"
    TRAILING_STOP = "trailingStop"
    HOLD = "hold"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True, slots=True)
class EntryDecision:
    enter: bool
    reason: str

    @classmethod
    def accept(cls, reason: str) -> "EntryDecision":
        return cls(True, reason)

    @classmethod
    def reject(cls, reason: str) -> "EntryDecision":
        return cls(False, reason)


@dataclass(frozen=True, slots=True)
class ExitDecision:
    exit: bool
    reason: ExitReason

    @classmethod
    def hold(cls, reason: ExitReason = ExitReason.HOLD) -> "ExitDecision":
        return cls(False, reason)

    @classmethod
    def close(cls, reason: ExitReason) -> "ExitDecision":
        return cls(True, reason)
