"""
TradeFlow – Kraken WebSocket Client (v2, asíncrono)
===================================================
Se conecta a wss://ws.kraken.com/v2, se suscribe a los canales `ohlc` (uno
por cada intervalo activo) y `trade`, y publica BarEvent / TickEvent en el
tópico "market" del EventBus.

RECONEXIÓN CON BACKOFF EXPONENCIAL + JITTER:
- Usa la misma RetryPolicy que la persistencia: delay creciente con tope y
  un número MÁXIMO de intentos consecutivos.
- Una conexión exitosa reinicia el contador.
- Agotados los intentos se loguea el error y el cliente se detiene;
  `wait_stopped()` permite al proceso reaccionar.

HEARTBEAT:
- Un task paralelo envía {"method": "ping"} cada N segundos.

ENTREGA:
- At-least-once: Kraken puede repetir una vela con los mismos valores o
  enviar actualizaciones de la misma vela; el CandleAggregator lo resuelve.
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Union

import websockets
from websockets.asyncio.client import ClientConnection

from tradeflow.domain.value_objects.market_events import BarEvent, TickEvent
from tradeflow.infrastructure.external.event_bus import MARKET_TOPIC, EventBus
from tradeflow.shared.logging.logger import get_logger
from tradeflow.shared.retry import RetryPolicy

logger = get_logger("kraken_ws")

MarketEvent = Union[BarEvent, TickEvent]


# ════════════════════════════════════════════════════════════════════════
#  PARSING
# ════════════════════════════════════════════════════════════════════════

def parse_timestamp(value: Union[str, int, float]) -> float:
    """
    ISO-8601 de Kraken (nanosegundos, sufijo Z) → epoch en segundos.

    "2024-10-04T16:25:00.123456789Z" → 1728059100.123456
    """
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat solo acepta hasta microsegundos
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        for i, ch in enumerate(rest):
            if not ch.isdigit():
                tail = rest[i:]
                break
            digits += ch
        else:
            tail = ""
        text = f"{head}.{digits[:6].ljust(6, '0')}{tail}"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def parse_ohlc(item: dict) -> BarEvent:
    return BarEvent(
        symbol=item["symbol"],
        open=float(item["open"]),
        high=float(item["high"]),
        low=float(item["low"]),
        close=float(item["close"]),
        volume=float(item.get("volume", 0.0)),
        timestamp=parse_timestamp(item["interval_begin"]),
        interval=int(item["interval"]) if item.get("interval") is not None else None,
    )


def parse_trade(item: dict) -> TickEvent:
    return TickEvent(
        symbol=item["symbol"],
        price=float(item["price"]),
        quantity=float(item.get("qty", 0.0)),
        timestamp=parse_timestamp(item["timestamp"]),
    )


def parse_message(data: dict) -> List[MarketEvent]:
    """Convertir un mensaje de datos v2 en eventos de mercado (vacío si no aplica)."""
    channel = data.get("channel")
    if data.get("type") not in ("update", "snapshot"):
        return []

    events: List[MarketEvent] = []
    for item in data.get("data") or []:
        try:
            if channel == "ohlc":
                events.append(parse_ohlc(item))
            elif channel == "trade":
                events.append(parse_trade(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Item de '%s' inválido ignorado: %s (%s)", channel, item, e)
    return events


def build_subscriptions(symbols: Sequence[str], intervals: Iterable[int]) -> List[dict]:
    """Mensajes de suscripción: un `ohlc` por intervalo + un `trade`."""
    messages = [
        {
            "method": "subscribe",
            "params": {
                "channel": "ohlc",
                "symbol": list(symbols),
                "interval": interval,
                "snapshot": False,
            },
        }
        for interval in sorted(set(intervals))
    ]
    messages.append(
        {"method": "subscribe", "params": {"channel": "trade", "symbol": list(symbols)}}
    )
    return messages


# ════════════════════════════════════════════════════════════════════════
#  CLIENTE
# ════════════════════════════════════════════════════════════════════════

class KrakenWebSocketClient:
    """
    Cliente WebSocket asíncrono para Kraken v2.

    Ciclo de vida:
      1. start()         → lanza task de conexión
      2. _connect_loop() → reconexión con backoff acotado
      3. _listen()       → parsear mensajes y publicar eventos
      4. _heartbeat()    → mantener conexión viva
      5. stop()          → shutdown limpio
    """

    def __init__(
        self,
        event_bus: EventBus,
        symbols: Sequence[str],
        intervals: Iterable[int],
        *,
        url: str = "wss://ws.kraken.com/v2",
        reconnect_policy: Optional[RetryPolicy] = None,
        heartbeat_interval: float = 30.0,
    ) -> None:
        self._event_bus = event_bus
        self._symbols = list(symbols)
        self._intervals = sorted(set(intervals))
        self._url = url
        self._policy = reconnect_policy or RetryPolicy(
            max_attempts=5, base_delay=5.0, max_delay=60.0
        )
        self._heartbeat_interval = heartbeat_interval

        self._ws: Optional[ClientConnection] = None
        self._running = False
        self._connect_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_attempt = 0
        self._stopped = asyncio.Event()

        # Estadísticas de monitoreo
        self._bars_received = 0
        self._ticks_received = 0
        self._connected_since = 0.0

    # ──────────────────────── Lifecycle ──────────────────────────────────

    async def start(self) -> None:
        """Iniciar cliente. Idempotente."""
        if self._running:
            logger.warning("KrakenWebSocketClient ya está corriendo, ignorando start()")
            return
        self._running = True
        self._stopped.clear()
        self._connect_task = asyncio.create_task(
            self._connect_loop(), name="kraken-connect-loop"
        )
        logger.info("KrakenWebSocketClient iniciado (%d símbolos)", len(self._symbols))

    async def stop(self) -> None:
        """Shutdown limpio: cerrar WS y cancelar tasks."""
        self._running = False
        logger.info("Deteniendo KrakenWebSocketClient...")

        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()

        if self._ws is not None:
            try:
                await self._ws.close()
            except websockets.exceptions.WebSocketException as e:
                logger.debug("Error cerrando WS: %s", e)

        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass

        self._stopped.set()
        logger.info(
            "KrakenWebSocketClient detenido. Barras: %d, trades: %d",
            self._bars_received, self._ticks_received,
        )

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    # ──────────────────────── Connection Loop ───────────────────────────

    async def _connect_loop(self) -> None:
        while self._running:
            try:
                logger.info("Conectando a Kraken: %s", self._url)
                async with websockets.connect(
                    self._url,
                    ping_interval=None,   # heartbeat propio
                    ping_timeout=None,
                    close_timeout=10,
                    max_size=2**22,
                ) as ws:
                    self._ws = ws
                    self._reconnect_attempt = 0
                    self._connected_since = time.time()
                    logger.info("✓ Conectado a Kraken WebSocket")

                    await self._subscribe(ws)
                    self._heartbeat_task = asyncio.create_task(
                        self._heartbeat(ws), name="kraken-heartbeat"
                    )
                    await self._listen(ws)

            except websockets.exceptions.ConnectionClosed as e:
                logger.warning("Conexión cerrada: %s", e)
            except OSError as e:
                logger.error("Error de red: %s", e)
            except websockets.exceptions.WebSocketException as e:
                logger.error("Error de WebSocket: %s", e)
            finally:
                self._ws = None
                if self._heartbeat_task and not self._heartbeat_task.done():
                    self._heartbeat_task.cancel()

            if not self._running:
                break

            self._reconnect_attempt += 1
            if self._reconnect_attempt > self._policy.max_attempts:
                logger.error(
                    "Máximo de reconexiones (%d) alcanzado – transporte detenido",
                    self._policy.max_attempts,
                )
                self._running = False
                self._stopped.set()
                break

            delay = self._policy.compute_delay(self._reconnect_attempt - 1)
            logger.info(
                "Reconectando en %.1fs (intento %d/%d)...",
                delay, self._reconnect_attempt, self._policy.max_attempts,
            )
            await asyncio.sleep(delay)

    # ──────────────────────── Subscribe ─────────────────────────────────

    async def _subscribe(self, ws: ClientConnection) -> None:
        for msg in build_subscriptions(self._symbols, self._intervals):
            await ws.send(json.dumps(msg))
            params = msg["params"]
            logger.info(
                "Suscripción enviada: %s%s para %d símbolos",
                params["channel"],
                f"-{params['interval']}" if "interval" in params else "",
                len(self._symbols),
            )

    # ──────────────────────── Listener ──────────────────────────────────

    async def _listen(self, ws: ClientConnection) -> None:
        async for raw_msg in ws:
            if not self._running:
                break
            try:
                data = json.loads(raw_msg)
            except json.JSONDecodeError:
                logger.warning("Mensaje no-JSON recibido, ignorando")
                continue
            await self.handle_message(data)

    async def handle_message(self, data: Any) -> int:
        """Procesar un mensaje ya decodificado. Retorna eventos publicados."""
        if not isinstance(data, dict):
            return 0

        method = data.get("method")
        if method in ("pong",):
            return 0
        if method in ("subscribe", "unsubscribe"):
            if data.get("success", False):
                logger.info("Suscripción confirmada: %s", data.get("result", {}))
            else:
                logger.error("Suscripción rechazada: %s", data.get("error", data))
            return 0

        channel = data.get("channel")
        if channel in ("heartbeat", "status") or channel is None:
            return 0

        events = parse_message(data)
        for event in events:
            if isinstance(event, BarEvent):
                self._bars_received += 1
            else:
                self._ticks_received += 1
            await self._event_bus.publish(MARKET_TOPIC, event)
        return len(events)

    # ──────────────────────── Heartbeat ─────────────────────────────────

    async def _heartbeat(self, ws: ClientConnection) -> None:
        try:
            while self._running:
                await asyncio.sleep(self._heartbeat_interval)
                try:
                    await ws.send(json.dumps({"method": "ping"}))
                except websockets.exceptions.WebSocketException:
                    logger.warning("Fallo al enviar heartbeat, conexión probablemente perdida")
                    break
        except asyncio.CancelledError:
            pass

    # ──────────────────────── Stats ─────────────────────────────────────

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "connected": self._ws is not None,
            "bars_received": self._bars_received,
            "ticks_received": self._ticks_received,
            "connected_since": self._connected_since,
            "reconnect_attempts": self._reconnect_attempt,
        }
