"""Tests for execution.engine."""
from datetime import timedelta

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from helpers import make_market, make_price

from brain.orchestrator import DecisionMaker
from execution.engine import TradingEngine
from execution.paper_trader import PaperTrader
from execution.position_manager import PositionManager
from shared.schemas import (
    Action,
    ExitReason,
    LedgerRow,
    OpenPosition,
    Orderbook,
    PolicyLimits,
    Side,
    TrendAlignment,
    utcnow,
)
from storage.db import Database

SERIES = "KXBTC15M"
TICKER = "KXBTC15M-26OCT181200-00"


@pytest_asyncio.fixture
async def env(tmp_path):
    db = Database(str(tmp_path / "engine.db"))
    await db.init()

    client = MagicMock()
    client.active_market = AsyncMock(return_value=make_market(ticker=TICKER))
    client.orderbook = AsyncMock(return_value=Orderbook())
    client.market = AsyncMock(return_value=make_market(ticker=TICKER, status="active"))

    feed = MagicMock()
    feed.snapshot = AsyncMock(
        return_value=make_price(pct_change_15m=0.2, trend=TrendAlignment.ALL_UP)
    )

    ws = MagicMock()
    ws.subscribe = AsyncMock()
    ws.unsubscribe = AsyncMock()

    limits = PolicyLimits()
    positions = PositionManager(tp_cents=15, sl_cents=10)
    engine = TradingEngine(
        client=client,
        price_feed=feed,
        decision_maker=DecisionMaker(limits, mode="rules"),
        executor=PaperTrader(db, client),
        positions=positions,
        db=db,
        limits=limits,
        ws=ws,
    )
    yield engine
    await db.close()


@pytest.mark.asyncio
async def test_entry_cycle_buys_and_opens_position(env):
    decision = await env.entry_cycle(SERIES)
    assert decision.action is Action.BUY
    assert decision.side is Side.YES

    env.price_feed.snapshot.assert_awaited_once_with("BTCUSDT")
    assert env.positions.has_position(TICKER)
    env.ws.subscribe.assert_awaited_once_with(TICKER)

    pending = await env.db.get_pending(SERIES)
    assert pending.ticker == TICKER
    decisions = await env.db.get_recent_decisions()
    assert decisions[0]["action"] == "BUY"


@pytest.mark.asyncio
async def test_entry_cycle_skips_while_holding(env):
    await env.entry_cycle(SERIES)
    assert await env.entry_cycle(SERIES) is None
    assert env.client.active_market.await_count == 1


@pytest.mark.asyncio
async def test_pass_is_logged_without_order(env):
    env.price_feed.snapshot.return_value = make_price(trend=TrendAlignment.ALL_FLAT)
    env.client.active_market.return_value = make_market(ticker=TICKER, yes_ask=50, no_ask=50)
    decision = await env.entry_cycle(SERIES)
    assert decision.action is Action.PASS
    assert not env.positions.has_position()
    assert await env.db.get_pending() is None
    assert len(await env.db.get_recent_decisions()) == 1


@pytest.mark.asyncio
async def test_risk_veto_stops_cycle(env):
    env.executor.starting_balance_cents = 100
    assert await env.entry_cycle(SERIES) is None
    env.client.active_market.assert_not_awaited()


@pytest.mark.asyncio
async def test_too_close_to_expiry(env):
    env.client.active_market.return_value = make_market(ticker=TICKER, minutes_to_expiry=1.5)
    assert await env.entry_cycle(SERIES) is None
    env.price_feed.snapshot.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_active_market(env):
    env.client.active_market.return_value = None
    assert await env.entry_cycle(SERIES) is None


@pytest.mark.asyncio
async def test_settles_pending_before_deciding(env):
    await env.db.append_trade(LedgerRow(
        ticker=TICKER, series=SERIES, side=Side.YES, shares=1, price_cents=40,
    ))
    env.client.market.return_value = make_market(ticker=TICKER, status="determined", result="yes")
    await env.entry_cycle(SERIES)
    ledger = await env.db.get_ledger()
    assert ledger[0].result == "win"
    assert ledger[0].pnl_cents == 60


@pytest.mark.asyncio
async def test_zombie_pending_marked_unknown(env):
    await env.db.append_trade(LedgerRow(
        timestamp=utcnow() - timedelta(minutes=45),
        ticker=TICKER, series=SERIES, side=Side.YES, shares=1, price_cents=40,
    ))
    closed = await env.settle_pending(SERIES)
    assert closed.result == "unknown"
    assert closed.pnl_cents == 0


@pytest.mark.asyncio
async def test_fresh_pending_left_alone(env):
    await env.db.append_trade(LedgerRow(
        ticker=TICKER, series=SERIES, side=Side.YES, shares=1, price_cents=40,
    ))
    assert await env.settle_pending(SERIES) is None
    assert await env.db.get_pending(SERIES) is not None


@pytest.mark.asyncio
async def test_take_profit_exit(env):
    await env.entry_cycle(SERIES)
    entry = env.positions.position(TICKER).entry_price_cents
    env.positions.set_orderbook(TICKER, Orderbook.from_pairs([[entry + 20, 5]], []))

    exits = await env.check_positions()
    assert len(exits) == 1
    assert exits[0].reason is ExitReason.TAKE_PROFIT
    assert not env.positions.has_position()
    env.ws.unsubscribe.assert_awaited_once_with(TICKER)

    ledger = await env.db.get_ledger()
    assert ledger[-1].result == "exit_take_profit"
    assert ledger[-1].pnl_cents == 20 * ledger[-1].shares


@pytest.mark.asyncio
async def test_polling_refreshes_orderbook(env):
    env.positions.open_position(OpenPosition(
        ticker=TICKER, side=Side.YES, shares=1, entry_price_cents=45, order_id="ord-1",
    ))
    env.client.orderbook.return_value = Orderbook.from_pairs([[30, 5]], [])
    exits = await env.check_positions(poll=True)
    assert exits[0].reason is ExitReason.STOP_LOSS


@pytest.mark.asyncio
async def test_polling_releases_closed_market(env):
    env.positions.open_position(OpenPosition(
        ticker=TICKER, side=Side.YES, shares=1, entry_price_cents=45, order_id="ord-1",
    ))
    env.client.market.return_value = make_market(ticker=TICKER, status="determined", result="no")
    assert await env.check_positions(poll=True) == []
    assert not env.positions.has_position()
