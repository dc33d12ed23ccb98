"""Unit tests for application.services.position_ledger."""

import asyncio

import pytest

from tradeflow.application.services.position_ledger import PositionLedger
from tradeflow.domain.entities.portfolio import Portfolio
from tradeflow.domain.exceptions.domain_errors import (
    OrderPlacementError,
    PersistenceError,
    TransientPersistenceError,
)
from tradeflow.domain.repositories.trade_repository import StoredOpenTrade
from tradeflow.domain.strategies import MeanReversionStrategy
from tradeflow.domain.value_objects.decision import ExitReason
from tradeflow.infrastructure.persistence.repositories import InMemoryTradeRepository

BTC = "BTC/USD"
ETH = "ETH/USD"
SOL = "SOL/USD"


@pytest.fixture
def ledger_factory(repo, clock, fast_retry, make_config):
    def _make(repository=None, orders=None, **config_overrides):
        config = make_config(**config_overrides)
        return PositionLedger(
            config,
            MeanReversionStrategy(),
            repository or repo,
            portfolio=Portfolio(10_000),
            order_executor=orders,
            retry_policy=fast_retry,
            clock=clock,
        )

    return _make


def _fail_on(operation, error):
    return lambda op: error if op == operation else None


def test_open_persists_and_installs_position(ledger_factory, repo, entry_snapshot):
    ledger = ledger_factory()
    position = asyncio.run(ledger.try_open(BTC, entry_snapshot, 100.0))

    assert position is not None
    assert position.quantity == pytest.approx(5.0)
    assert position.peak_price == 100.0
    assert ledger.get_position(BTC) is position

    row = repo.get(position.trade_id)
    assert row["status"] == "open"
    assert row["entry_price"] == 100.0
    assert row["peak_price"] == 100.0
    assert row["portfolio_id"] == 4
    assert row["config_id"] == "meanReversion#4"


def test_one_position_per_symbol(ledger_factory, repo, entry_snapshot):
    ledger = ledger_factory()

    async def scenario():
        await ledger.try_open(BTC, entry_snapshot, 100.0)
        return await ledger.try_open(BTC, entry_snapshot, 101.0)

    assert asyncio.run(scenario()) is None
    assert len(repo.all()) == 1


def test_max_positions_respected(ledger_factory, entry_snapshot):
    ledger = ledger_factory(max_positions=2)

    async def scenario():
        return [await ledger.try_open(s, entry_snapshot, 100.0) for s in (BTC, ETH, SOL)]

    opened = asyncio.run(scenario())
    assert [p is not None for p in opened] == [True, True, False]
    assert ledger.portfolio.open_count == 2
    assert ledger.stats["skipped_max_positions"] == 1


def test_concurrent_opens_reserve_slots(ledger_factory, entry_snapshot):
    class SlowRepository(InMemoryTradeRepository):
        async def insert_open_trade(self, record):
            await asyncio.sleep(0.01)
            return await super().insert_open_trade(record)

    ledger = ledger_factory(repository=SlowRepository(), max_positions=1)

    async def scenario():
        return await asyncio.gather(
            ledger.try_open(BTC, entry_snapshot, 100.0),
            ledger.try_open(ETH, entry_snapshot, 100.0),
        )

    results = asyncio.run(scenario())
    assert sum(r is not None for r in results) == 1
    assert ledger.portfolio.open_count == 1
    assert ledger.pending_opens == 0


def test_rejected_entry_changes_nothing(ledger_factory, repo, make_snapshot):
    ledger = ledger_factory()
    assert asyncio.run(ledger.try_open(BTC, make_snapshot(rsi=60), 100.0)) is None
    assert asyncio.run(ledger.try_open(BTC, None, 100.0)) is None
    assert repo.calls == []
    assert ledger.stats["entries_rejected"] == 1


def test_persistence_failure_rolls_back_open(ledger_factory, entry_snapshot):
    repo = InMemoryTradeRepository(fail_with=_fail_on("insert_open_trade", PersistenceError("disco lleno")))
    ledger = ledger_factory(repository=repo)

    assert asyncio.run(ledger.try_open(BTC, entry_snapshot, 100.0)) is None
    assert ledger.get_position(BTC) is None
    assert ledger.portfolio.balance == 10_000
    assert ledger.stats["persistence_failures"] == 1
    assert ledger.unreconciled == []


def test_transient_failure_is_retried(ledger_factory, entry_snapshot):
    failures = {"left": 2}

    def flaky(op):
        if op == "insert_open_trade" and failures["left"] > 0:
            failures["left"] -= 1
            return TransientPersistenceError("lock wait timeout")
        return None

    repo = InMemoryTradeRepository(fail_with=flaky)
    ledger = ledger_factory(repository=repo)

    position = asyncio.run(ledger.try_open(BTC, entry_snapshot, 100.0))
    assert position is not None
    assert repo.calls.count("insert_open_trade") == 3


def test_live_order_failure_aborts_open(ledger_factory, repo, orders, entry_snapshot):
    orders.failing_sides.add("buy")
    ledger = ledger_factory(orders=orders, live_trading=True)

    assert asyncio.run(ledger.try_open(BTC, entry_snapshot, 100.0)) is None
    assert ledger.get_position(BTC) is None
    assert repo.calls == []
    assert orders.calls == [(BTC, "buy", pytest.approx(5.0))]
    assert ledger.unreconciled == []


def test_live_persist_failure_after_buy_is_unreconciled(ledger_factory, orders, entry_snapshot):
    repo = InMemoryTradeRepository(fail_with=_fail_on("insert_open_trade", PersistenceError("caído")))
    ledger = ledger_factory(repository=repo, orders=orders, live_trading=True)

    assert asyncio.run(ledger.try_open(BTC, entry_snapshot, 100.0)) is None
    assert [u["action"] for u in ledger.unreconciled] == ["open"]


def test_take_profit_close_updates_balance_and_store(ledger_factory, repo, clock, entry_snapshot):
    ledger = ledger_factory()

    async def scenario():
        position = await ledger.try_open(BTC, entry_snapshot, 100.0)
        clock.advance(10)
        closed = await ledger.update_position(BTC, entry_snapshot, 110.0)
        return position, closed

    position, closed = asyncio.run(scenario())

    assert closed is not None
    assert closed.reason is ExitReason.TAKE_PROFIT
    assert closed.persisted is True
    # bruto 50, fees 0.004 × 5 × 210 = 4.2
    assert closed.pnl.net == pytest.approx(45.8)
    assert ledger.portfolio.balance == pytest.approx(10_045.8)
    assert ledger.get_position(BTC) is None

    row = repo.get(position.trade_id)
    assert row["status"] == "closed"
    assert row["reason"] == "takeProfit"
    assert row["exit_price"] == 110.0
    assert row["closed_at"] == clock.now


def test_min_hold_keeps_position_and_marks_price(ledger_factory, repo, clock, entry_snapshot):
    ledger = ledger_factory()

    async def scenario():
        position = await ledger.try_open(BTC, entry_snapshot, 100.0)
        clock.advance(1)
        closed = await ledger.update_position(BTC, entry_snapshot, 90.0)
        clock.advance(1)
        await ledger.update_position(BTC, entry_snapshot, 103.0)
        return position, closed

    position, closed = asyncio.run(scenario())

    assert closed is None
    assert ledger.get_position(BTC) is position
    row = repo.get(position.trade_id)
    assert row["status"] == "open"
    assert row["peak_price"] == 103.0
    assert row["pnl"] == pytest.approx((103 - 100) * 5 - 0.004 * 5 * 203)


def test_peak_never_decreases(ledger_factory, clock, entry_snapshot):
    ledger = ledger_factory()

    async def scenario():
        await ledger.try_open(BTC, entry_snapshot, 100.0)
        for price in (102.0, 104.0, 101.0):
            await ledger.mark_price(BTC, price)

    asyncio.run(scenario())
    assert ledger.get_position(BTC).peak_price == 104.0


def test_close_persist_failure_is_unreconciled(ledger_factory, clock, entry_snapshot):
    repo = InMemoryTradeRepository()
    ledger = ledger_factory(repository=repo)

    async def scenario():
        await ledger.try_open(BTC, entry_snapshot, 100.0)
        repo.fail_with = _fail_on("update_trade", PersistenceError("timeout"))
        clock.advance(10)
        return await ledger.update_position(BTC, entry_snapshot, 110.0)

    closed = asyncio.run(scenario())

    assert closed.persisted is False
    assert ledger.get_position(BTC) is None
    assert ledger.portfolio.balance == pytest.approx(10_045.8)
    [entry] = ledger.unreconciled
    assert entry["action"] == "close"
    assert entry["fields"]["status"] == "closed"


def test_live_sell_failure_still_closes_locally(ledger_factory, repo, orders, clock, entry_snapshot):
    ledger = ledger_factory(orders=orders, live_trading=True)

    async def scenario():
        await ledger.try_open(BTC, entry_snapshot, 100.0)
        orders.failing_sides.add("sell")
        clock.advance(10)
        return await ledger.update_position(BTC, entry_snapshot, 110.0)

    closed = asyncio.run(scenario())

    assert closed is not None
    assert ledger.get_position(BTC) is None
    assert [side for _, side, _ in orders.calls] == ["buy", "sell"]
    assert ledger.stats["order_failures"] == 1
    assert [u["action"] for u in ledger.unreconciled] == ["sell"]


def test_close_all_liquidates_everything(ledger_factory, repo, entry_snapshot):
    ledger = ledger_factory()

    async def scenario():
        await ledger.try_open(BTC, entry_snapshot, 100.0)
        await ledger.try_open(ETH, entry_snapshot, 50.0)
        return await ledger.close_all({BTC: 105.0})

    closed = asyncio.run(scenario())

    assert {c.symbol for c in closed} == {BTC, ETH}
    assert all(c.reason is ExitReason.SHUTDOWN for c in closed)
    by_symbol = {c.symbol: c for c in closed}
    assert by_symbol[BTC].exit_price == 105.0
    assert by_symbol[ETH].exit_price == 50.0      # sin precio conocido → entrada
    assert ledger.portfolio.open_count == 0
    assert all(row["status"] == "closed" for row in repo.all())


def test_restore_reinstalls_stored_peak(ledger_factory):
    ledger = ledger_factory()
    trades = [
        StoredOpenTrade(7, BTC, 100.0, 2.0, 1_000.0, 130.0),
        StoredOpenTrade(8, BTC, 99.0, 1.0, 1_100.0, None),
        StoredOpenTrade(9, ETH, 50.0, 3.0, 1_200.0, None),
    ]

    assert ledger.restore(trades) == 2
    btc = ledger.get_position(BTC)
    assert (btc.trade_id, btc.peak_price, btc.entry_time) == (7, 130.0, 1_000.0)
    assert ledger.get_position(ETH).peak_price == 50.0


def test_missing_trade_id_is_resolved_from_store(ledger_factory, repo, entry_snapshot):
    ledger = ledger_factory()

    async def scenario():
        position = await ledger.try_open(BTC, entry_snapshot, 100.0)
        trade_id = position.trade_id
        await repo.update_trade(trade_id, {"peak_price": 108.0})
        position.trade_id = None
        await ledger.mark_price(BTC, 101.0)
        return position, trade_id

    position, trade_id = asyncio.run(scenario())
    assert position.trade_id == trade_id
    assert position.peak_price == 108.0
    assert repo.get(trade_id)["peak_price"] == 108.0


# ─── Órdenes sin respuesta (timeout) ────────────────────────────────────

def test_live_buy_timeout_aborts_open_and_flags_possible_fill(ledger_factory, repo, orders, entry_snapshot):
    orders.errors["buy"] = asyncio.TimeoutError()
    ledger = ledger_factory(orders=orders, live_trading=True)

    assert asyncio.run(ledger.try_open(BTC, entry_snapshot, 100.0)) is None
    assert ledger.get_position(BTC) is None
    assert repo.calls == []
    [entry] = ledger.unreconciled
    assert entry["action"] == "buy"
    assert entry["fields"]["quantity"] == pytest.approx(5.0)
    assert entry["error"] == "TimeoutError"


def test_uncertain_buy_rejection_is_unreconciled(ledger_factory, orders, entry_snapshot):
    orders.errors["buy"] = OrderPlacementError("sin respuesta", symbol=BTC, side="buy", uncertain=True)
    ledger = ledger_factory(orders=orders, live_trading=True)

    assert asyncio.run(ledger.try_open(BTC, entry_snapshot, 100.0)) is None
    assert [u["action"] for u in ledger.unreconciled] == ["buy"]


def test_live_sell_timeout_still_closes_locally(ledger_factory, repo, orders, clock, entry_snapshot):
    ledger = ledger_factory(orders=orders, live_trading=True)

    async def scenario():
        position = await ledger.try_open(BTC, entry_snapshot, 100.0)
        orders.errors["sell"] = asyncio.TimeoutError()
        clock.advance(10)
        closed = await ledger.try_close(BTC, entry_snapshot, 50.0)
        return position, closed

    position, closed = asyncio.run(scenario())

    assert closed is not None
    assert ledger.get_position(BTC) is None
    assert ledger.portfolio.open_count == 0
    assert ledger.portfolio.balance < 10_000
    assert repo.get(position.trade_id)["status"] == "closed"
    [entry] = ledger.unreconciled
    assert entry["action"] == "sell"
    assert entry["trade_id"] == position.trade_id
