"""
TradeFlow – Retry Policy
========================
Política única de reintentos con backoff exponencial + jitter.

La usan:
  - Repositorios de trades (errores transitorios de MySQL)
  - Bootstrap de históricos (REST de Kraken)
  - Reconexión del WebSocket

FÓRMULA:
    delay  = min(base_delay * 2^intento, max_delay)
    jitter = uniform(0, delay * jitter_ratio)
    espera = delay + jitter

Tras agotar `max_attempts` se relanza el ÚLTIMO error: el llamador decide
si es fatal (bootstrap) o si solo se loguea (cierre de posición).
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from tradeflow.shared.logging.logger import get_logger

logger = get_logger("retry")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Parámetros de reintento inmutables."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    jitter_ratio: float = 0.3

    def compute_delay(self, attempt: int) -> float:
        """Delay (seg) antes del reintento número `attempt` (0-based)."""
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        jitter = random.uniform(0, delay * self.jitter_ratio) if delay > 0 else 0.0
        return delay + jitter

    def can_retry(self, attempt: int) -> bool:
        """True si aún quedan intentos tras `attempt` intentos fallidos."""
        return attempt < self.max_attempts

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        label: str = "operation",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        """
        Ejecutar `operation` reintentando ante las excepciones `retry_on`.

        Las excepciones fuera de `retry_on` se propagan de inmediato.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except retry_on as exc:
                attempt += 1
                if not self.can_retry(attempt):
                    logger.error(
                        "%s falló tras %d intentos: %s", label, attempt, exc,
                    )
                    raise
                delay = self.compute_delay(attempt - 1)
                logger.warning(
                    "%s falló (intento %d/%d): %s – reintentando en %.2fs",
                    label, attempt, self.max_attempts, exc, delay,
                )
                await sleep(delay)
