"""Tests for the Kraken WebSocket parsing/handling and REST helpers (no exchange traffic)."""

import asyncio
import base64
from contextlib import asynccontextmanager

import pytest

from tradeflow.application.services.position_ledger import PositionLedger
from tradeflow.domain.entities.portfolio import Portfolio
from tradeflow.domain.exceptions.domain_errors import OrderPlacementError, TransportError
from tradeflow.domain.repositories.trade_repository import OpenTradeRecord, StoredOpenTrade
from tradeflow.domain.strategies import MeanReversionStrategy
from tradeflow.domain.value_objects.market_events import BarEvent, TickEvent
from tradeflow.infrastructure.external.event_bus import MARKET_TOPIC, EventBus
from tradeflow.infrastructure.external.kraken_rest_client import (
    KrakenRestClient,
    parse_ohlc_rows,
    rest_pair,
    sign_request,
)
from tradeflow.infrastructure.external.kraken_ws_client import (
    KrakenWebSocketClient,
    build_subscriptions,
    parse_message,
    parse_timestamp,
)
from tradeflow.shared.retry import RetryPolicy

OHLC_ITEM = {
    "symbol": "BTC/USD",
    "open": 100.0,
    "high": 101.5,
    "low": 99.5,
    "close": 101.0,
    "vwap": 100.7,
    "trades": 12,
    "volume": 3.25,
    "interval_begin": "1970-01-01T00:05:00.000000000Z",
    "interval": 5,
    "timestamp": "1970-01-01T00:06:12.345678901Z",
}

TRADE_ITEM = {
    "symbol": "BTC/USD",
    "side": "buy",
    "price": 101.2,
    "qty": 0.5,
    "ord_type": "market",
    "trade_id": 1,
    "timestamp": "1970-01-01T00:06:00.250000Z",
}


# ─── WebSocket parsing ──────────────────────────────────────────────────

def test_parse_timestamp_truncates_nanoseconds():
    assert parse_timestamp("1970-01-01T00:01:00.500000000Z") == pytest.approx(60.5)
    assert parse_timestamp("1970-01-01T00:06:12.345678901Z") == pytest.approx(372.345678)
    assert parse_timestamp("1970-01-01T00:00:10Z") == 10.0
    assert parse_timestamp(42) == 42.0


def test_parse_ohlc_update():
    [event] = parse_message({"channel": "ohlc", "type": "update", "data": [OHLC_ITEM]})
    assert isinstance(event, BarEvent)
    assert event.timestamp == pytest.approx(300.0)
    assert event.interval == 5
    assert (event.open, event.high, event.low, event.close, event.volume) == (
        100.0, 101.5, 99.5, 101.0, 3.25,
    )


def test_parse_trade_snapshot():
    [event] = parse_message({"channel": "trade", "type": "snapshot", "data": [TRADE_ITEM]})
    assert isinstance(event, TickEvent)
    assert event.price == 101.2
    assert event.quantity == 0.5
    assert event.timestamp == pytest.approx(360.25)


def test_parse_skips_invalid_items_and_other_types():
    broken = dict(OHLC_ITEM)
    del broken["close"]
    events = parse_message({"channel": "ohlc", "type": "update", "data": [broken, OHLC_ITEM]})
    assert len(events) == 1
    assert parse_message({"channel": "ohlc", "type": "error", "data": [OHLC_ITEM]}) == []


def test_subscriptions_one_ohlc_per_interval():
    messages = build_subscriptions(["BTC/USD", "ETH/USD"], [15, 5, 15])
    assert [m["params"]["channel"] for m in messages] == ["ohlc", "ohlc", "trade"]
    assert [m["params"].get("interval") for m in messages[:2]] == [5, 15]
    assert all(m["params"]["symbol"] == ["BTC/USD", "ETH/USD"] for m in messages)
    assert messages[0]["params"]["snapshot"] is False


def test_handle_message_publishes_market_events():
    async def scenario():
        bus = EventBus(max_queue_size=10)
        queue = await bus.subscribe(MARKET_TOPIC, "test")
        client = KrakenWebSocketClient(bus, ["BTC/USD"], [5])

        published = await client.handle_message(
            {"channel": "ohlc", "type": "update", "data": [OHLC_ITEM]}
        )
        published += await client.handle_message(
            {"channel": "trade", "type": "update", "data": [TRADE_ITEM, TRADE_ITEM]}
        )
        ignored = [
            await client.handle_message({"method": "pong"}),
            await client.handle_message({"method": "subscribe", "success": True, "result": {}}),
            await client.handle_message({"channel": "heartbeat"}),
            await client.handle_message({"channel": "status", "type": "update", "data": []}),
            await client.handle_message(["not", "a", "dict"]),
        ]
        return published, ignored, queue.qsize(), client.stats

    published, ignored, queued, stats = asyncio.run(scenario())
    assert published == 3
    assert ignored == [0, 0, 0, 0, 0]
    assert queued == 3
    assert stats["bars_received"] == 1
    assert stats["ticks_received"] == 2


# ─── REST helpers ───────────────────────────────────────────────────────

def test_rest_pair():
    assert rest_pair("BTC/USD") == "BTCUSD"
    assert rest_pair("sol/usd") == "SOLUSD"


def test_sign_request_is_deterministic_sha512():
    secret = base64.b64encode(b"super-secret-key").decode()
    body = {"nonce": 1616492376594, "pair": "BTCUSD", "type": "buy"}

    first = sign_request("/0/private/AddOrder", body, secret)
    again = sign_request("/0/private/AddOrder", dict(body), secret)
    other = sign_request("/0/private/AddOrder", {**body, "nonce": 1616492376595}, secret)

    assert first == again
    assert first != other
    assert len(base64.b64decode(first)) == 64


def test_parse_ohlc_rows_uses_pair_key():
    result = {
        "XXBTZUSD": [
            [1700000000, "100.0", "101.0", "99.0", "100.5", "100.2", "12.5", 40],
            [1700000300, "100.5", "102.0", "100.0", "101.5", "101.0", "8.0", 22],
        ],
        "last": 1700000300,
    }
    candles = parse_ohlc_rows("BTC/USD", result)
    assert [c.timestamp for c in candles] == [1700000000.0, 1700000300.0]
    assert candles[0].volume == 12.5
    assert candles[1].close == 101.5
    assert candles[0].symbol == "BTC/USD"


def test_starting_portfolio_uses_configured_balance(make_config):
    client = KrakenRestClient()
    portfolio = asyncio.run(client.get_starting_portfolio(make_config(trade_balance=2_500)))
    assert portfolio.balance == 2_500
    assert portfolio.open_count == 0


def test_order_without_credentials_fails_as_order_error():
    client = KrakenRestClient()
    with pytest.raises(OrderPlacementError) as info:
        asyncio.run(client.submit_market_order("BTC/USD", "buy", 0.1))
    assert info.value.uncertain is False
    with pytest.raises(OrderPlacementError):
        asyncio.run(client.submit_market_order("BTC/USD", "short", 0.1))


def test_reconnect_gives_up_after_max_attempts():
    async def scenario():
        client = KrakenWebSocketClient(
            EventBus(),
            ["BTC/USD"],
            [5],
            url="ws://127.0.0.1:9",
            reconnect_policy=RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0),
        )
        await client.start()
        await asyncio.wait_for(client.wait_stopped(), timeout=10)
        stats = client.stats
        await client.stop()
        return stats

    stats = asyncio.run(scenario())
    assert stats["running"] is False
    assert stats["reconnect_attempts"] == 3


# ─── REST ante un servidor que no responde bien ─────────────────────────

SECRET = base64.b64encode(b"super-secret-key").decode()

NOT_JSON_REPLY = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: text/plain\r\n"
    b"Content-Length: 8\r\n"
    b"Connection: close\r\n"
    b"\r\n"
    b"not json"
)


@asynccontextmanager
async def _local_server(reply=None):
    """Servidor HTTP mínimo: responde `reply` o se queda callado."""
    release = asyncio.Event()

    async def handle(reader, writer):
        await reader.read(4096)
        if reply is None:
            await release.wait()
        else:
            writer.write(reply)
            await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        release.set()
        server.close()
        await server.wait_closed()


def _client(url):
    return KrakenRestClient(base_url=url, api_key="key", api_secret=SECRET, timeout=0.2)


def test_order_timeout_is_an_uncertain_order_error():
    async def scenario():
        async with _local_server() as url:
            with pytest.raises(OrderPlacementError) as info:
                await _client(url).submit_market_order("BTC/USD", "sell", 1.0)
            return info.value

    error = asyncio.run(scenario())
    assert error.uncertain is True
    assert error.side == "sell"


def test_unreadable_reply_is_a_transport_error():
    async def scenario():
        async with _local_server(NOT_JSON_REPLY) as url:
            with pytest.raises(TransportError):
                await _client(url).get_historical_candles("BTC/USD", 5)
            with pytest.raises(OrderPlacementError) as info:
                await _client(url).submit_market_order("BTC/USD", "buy", 1.0)
            return info.value

    assert asyncio.run(scenario()).uncertain is True


def test_stop_loss_closes_locally_when_exchange_times_out(make_config, repo, clock, fast_retry, entry_snapshot):
    config = make_config(live_trading=True)

    async def scenario():
        async with _local_server() as url:
            ledger = PositionLedger(
                config,
                MeanReversionStrategy(),
                repo,
                portfolio=Portfolio(10_000),
                order_executor=_client(url),
                retry_policy=fast_retry,
                clock=clock,
            )
            opened_at = clock() - 600
            trade_id = await repo.insert_open_trade(
                OpenTradeRecord(config.portfolio_id, config.config_id, "BTC/USD", 100.0, 1.0, opened_at, 100.0)
            )
            ledger.restore([StoredOpenTrade(trade_id, "BTC/USD", 100.0, 1.0, opened_at, 100.0)])
            closed = await ledger.try_close("BTC/USD", entry_snapshot, 50.0)
            return ledger, closed, trade_id

    ledger, closed, trade_id = asyncio.run(scenario())
    assert closed is not None
    assert closed.persisted is True
    assert ledger.get_position("BTC/USD") is None
    assert repo.get(trade_id)["status"] == "closed"
    assert [u["action"] for u in ledger.unreconciled] == ["sell"]
