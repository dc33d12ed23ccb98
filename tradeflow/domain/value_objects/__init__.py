"""Domain value objects."""

from tradeflow.domain.value_objects.decision import EntryDecision, ExitDecision, ExitReason
from tradeflow.domain.value_objects.indicator_snapshot import (
    IndicatorSnapshot,
    MacdReading,
    RsiReading,
)
from tradeflow.domain.value_objects.market_events import BarEvent, TickEvent

__all__ = [
    "BarEvent",
    "TickEvent",
    "IndicatorSnapshot",
    "MacdReading",
    "RsiReading",
    "EntryDecision",
    "ExitDecision",
    "ExitReason",
]
