"""
TradeFlow – Event Bus (asyncio.Queue fan-out)
=============================================
Bus de eventos interno que desacopla el transporte (KrakenWebSocketClient)
de los consumidores (un StrategyPipeline por configuración).

Arquitectura:
  ┌──────────┐          ┌───────────┐
  │  Kraken  │──market─▸│ Event Bus │──▸ Pipeline meanReversion#4
  │  Client  │          │ (fan-out) │──▸ Pipeline trendFollowing#2
  └──────────┘          └───────────┘──▸ Pipeline N ...

UN SOLO TÓPICO "market":
- Barras y ticks viajan por la misma cola, así cada pipeline los recibe en
  el orden en que los entregó el transporte.

CONTRAPRESIÓN:
- Cada consumidor tiene su propia asyncio.Queue acotada.
- Cola llena → se descarta el evento MÁS ANTIGUO de esa cola (drop-oldest).
  El productor nunca se bloquea y un pipeline lento no frena a los demás.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from tradeflow.shared.logging.logger import get_logger

logger = get_logger("event_bus")

MARKET_TOPIC = "market"


class EventBus:
    """Reparte cada evento publicado a la cola propia de cada suscriptor."""

    def __init__(self, max_queue_size: int = 10_000) -> None:
        self._queue_limit = max_queue_size
        # tópico → [(cola, suscriptor)]
        self._topics: Dict[str, List[Tuple[asyncio.Queue, str]]] = {}
        self._registry_lock = asyncio.Lock()
        self._published = 0
        self._dropped = 0

    async def subscribe(self, topic: str, name: str) -> asyncio.Queue:
        """Alta de `name` en `topic`; la cola devuelta es solo suya."""
        async with self._registry_lock:
            queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_limit)
            self._topics.setdefault(topic, []).append((queue, name))
        logger.info("'%s' suscrito a '%s' (cola máx. %d)", name, topic, self._queue_limit)
        return queue

    async def unsubscribe(self, topic: str, name: str) -> None:
        async with self._registry_lock:
            remaining = [(q, n) for q, n in self._topics.get(topic, []) if n != name]
            if remaining:
                self._topics[topic] = remaining
            else:
                self._topics.pop(topic, None)

    async def unsubscribe_all(self, topic: Optional[str] = None) -> None:
        """Baja de todos los suscriptores de `topic` (o de todos los tópicos)."""
        async with self._registry_lock:
            if topic is None:
                self._topics.clear()
            else:
                self._topics.pop(topic, None)
        logger.info("Suscriptores eliminados (%s)", topic or "todos los tópicos")

    async def publish(self, topic: str, data: Any) -> None:
        """Encolar `data` en cada suscriptor; con la cola llena cae el más viejo."""
        self._published += 1
        for queue, name in self._topics.get(topic, []):
            if queue.full():
                self._drop_oldest(queue, name, topic)
            try:
                queue.put_nowait(data)
            except asyncio.QueueFull:
                logger.error("Evento perdido para '%s' en '%s'", name, topic)

    def _drop_oldest(self, queue: asyncio.Queue, name: str, topic: str) -> None:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return
        queue.task_done()
        self._dropped += 1
        logger.warning("'%s' no da abasto en '%s': se descarta el evento más viejo", name, topic)

    @property
    def subscriber_count(self) -> int:
        return sum(len(entries) for entries in self._topics.values())

    @property
    def stats(self) -> dict:
        return {
            "subscribers": self.subscriber_count,
            "published": self._published,
            "dropped": self._dropped,
        }
