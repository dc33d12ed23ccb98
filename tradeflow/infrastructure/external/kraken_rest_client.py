"""
TradeFlow – Kraken REST Client (aiohttp)
========================================
Adaptador REST de Kraken para el arranque y la ejecución de órdenes.

IMPLEMENTA:
  - IMarketDataProvider → históricos OHLC + portafolio inicial
  - IOrderExecutor      → órdenes de mercado firmadas (modo live)

ENDPOINTS:
  GET  /0/public/OHLC?pair=BTCUSD&interval=5
       result = {"<PAR>": [[time, open, high, low, close, vwap, volume, count], ...],
                 "last": <id>}
  POST /0/private/Balance
  POST /0/private/AddOrder   (pair, type, ordertype=market, volume)

FIRMA DE REQUESTS PRIVADOS:
  API-Sign = base64( HMAC-SHA512( base64decode(secret),
                                  uri_path + SHA256(nonce + postdata) ) )
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import aiohttp

from tradeflow.application.ports.market_data_provider import IMarketDataProvider
from tradeflow.application.ports.order_executor import IOrderExecutor
from tradeflow.domain.entities.candle import Candle
from tradeflow.domain.entities.portfolio import Portfolio
from tradeflow.domain.entities.strategy_config import StrategyConfig
from tradeflow.domain.exceptions.domain_errors import OrderPlacementError, TransportError
from tradeflow.shared.logging.logger import get_logger

logger = get_logger("kraken_rest")

USD_BALANCE_KEY = "ZUSD"

# Fallos de red o de respuesta: el request pudo llegar o no al exchange
_REQUEST_FAILURES = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)


class KrakenRejectedError(TransportError):
    """Kraken respondió con error (o el request ni se envió): nada se ejecutó."""


def rest_pair(symbol: str) -> str:
    """Par del WS v2 ("BTC/USD") → par REST ("BTCUSD")."""
    return symbol.replace("/", "").upper()


def sign_request(uri_path: str, data: Dict[str, Any], secret: str) -> str:
    """Firma API-Sign de Kraken para `uri_path` con el cuerpo `data` (incluye nonce)."""
    postdata = urlencode(data)
    encoded = (str(data["nonce"]) + postdata).encode()
    message = uri_path.encode() + hashlib.sha256(encoded).digest()
    mac = hmac.new(base64.b64decode(secret), message, hashlib.sha512)
    return base64.b64encode(mac.digest()).decode()


def parse_ohlc_rows(symbol: str, result: Dict[str, Any]) -> List[Candle]:
    """Convertir `result` de /OHLC en velas (toma la primera clave distinta de "last")."""
    rows = next((v for k, v in result.items() if k != "last"), None) or []
    return [
        Candle(
            symbol=symbol,
            timestamp=float(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[6]),
        )
        for row in rows
    ]


class KrakenRestClient(IMarketDataProvider, IOrderExecutor):
    """
    Cliente REST asíncrono.

    USO:
        client = KrakenRestClient(api_key, api_secret)
        candles = await client.get_historical_candles("BTC/USD", 5, limit=105)
        await client.submit_market_order("BTC/USD", "buy", 0.01)
    """

    def __init__(
        self,
        base_url: str = "https://api.kraken.com",
        api_key: str = "",
        api_secret: str = "",
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._last_nonce = 0

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key and self._api_secret)

    # ════════════════════════════════════════════════════════════════
    #  HTTP
    # ════════════════════════════════════════════════════════════════

    async def _public(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(url, params=params) as resp:
                    if resp.status >= 500:
                        raise TransportError(f"Kraken {path}: HTTP {resp.status}")
                    payload = await resp.json(content_type=None)
        except _REQUEST_FAILURES as e:
            raise TransportError(f"Kraken {path}: {type(e).__name__} {e}") from e
        return self._unwrap(path, payload)

    async def _private(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.has_credentials:
            raise KrakenRejectedError("Credenciales de Kraken no configuradas")

        body = {"nonce": self._next_nonce(), **data}
        headers = {
            "API-Key": self._api_key,
            "API-Sign": sign_request(path, body, self._api_secret),
            "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
        }
        url = f"{self._base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(url, data=urlencode(body), headers=headers) as resp:
                    if resp.status >= 500:
                        raise TransportError(f"Kraken {path}: HTTP {resp.status}")
                    payload = await resp.json(content_type=None)
        except _REQUEST_FAILURES as e:
            raise TransportError(f"Kraken {path}: {type(e).__name__} {e}") from e
        return self._unwrap(path, payload)

    @staticmethod
    def _unwrap(path: str, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise TransportError(f"Kraken {path}: respuesta inesperada")
        errors = payload.get("error") or []
        if errors:
            raise KrakenRejectedError(f"Kraken {path}: {', '.join(map(str, errors))}")
        return payload.get("result") or {}

    def _next_nonce(self) -> int:
        nonce = max(int(time.time() * 1000), self._last_nonce + 1)
        self._last_nonce = nonce
        return nonce

    # ════════════════════════════════════════════════════════════════
    #  IMarketDataProvider
    # ════════════════════════════════════════════════════════════════

    async def get_historical_candles(
        self,
        symbol: str,
        interval: int,
        limit: int = 100,
    ) -> List[Candle]:
        result = await self._public(
            "/0/public/OHLC", {"pair": rest_pair(symbol), "interval": interval}
        )
        candles = parse_ohlc_rows(symbol, result)
        if limit > 0:
            candles = candles[-limit:]
        logger.info("[%s] %d velas históricas (%dm)", symbol, len(candles), interval)
        return candles

    async def get_starting_portfolio(self, config: StrategyConfig) -> Portfolio:
        balance = config.trade_balance
        if config.live_trading and self.has_credentials:
            usd = await self.get_usd_balance()
            if usd < balance:
                logger.warning(
                    "[%s] Balance en Kraken (%.2f) menor al configurado (%.2f) – se usa el de Kraken",
                    config.config_id, usd, balance,
                )
                balance = usd
        return Portfolio(balance)

    async def get_usd_balance(self) -> float:
        result = await self._private("/0/private/Balance", {})
        return float(result.get(USD_BALANCE_KEY, 0.0))

    # ════════════════════════════════════════════════════════════════
    #  IOrderExecutor
    # ════════════════════════════════════════════════════════════════

    async def submit_market_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
    ) -> Dict[str, Any]:
        if side not in ("buy", "sell"):
            raise OrderPlacementError(f"Lado inválido: {side}", symbol=symbol, side=side)

        logger.info("[%s] Enviando orden de mercado %s qty=%.8f", symbol, side, quantity)
        try:
            result = await self._private(
                "/0/private/AddOrder",
                {
                    "pair": rest_pair(symbol),
                    "type": side,
                    "ordertype": "market",
                    "volume": f"{quantity:.8f}",
                },
            )
        except TransportError as e:
            raise OrderPlacementError(
                str(e),
                symbol=symbol,
                side=side,
                uncertain=not isinstance(e, KrakenRejectedError),
            ) from e

        logger.info("[%s] Orden aceptada: %s", symbol, result.get("descr", result))
        return result
