"""Tests for feeds.kalshi_ws."""
import asyncio
import json

import pytest
from unittest.mock import MagicMock

from feeds.kalshi_ws import KalshiWebSocket, parse_message
from shared.schemas import (
    Disconnected,
    FillEvent,
    MarketLifecycleEvent,
    OrderbookDelta,
    OrderbookSnapshot,
    Side,
)


def _frame(msg_type, **msg):
    return json.dumps({"type": msg_type, "sid": 1, "msg": msg})


def test_parse_snapshot():
    event = parse_message(_frame(
        "orderbook_snapshot", market_ticker="T", yes=[[40, 5], [45, 1]], no=[[50, 2]]
    ))
    assert isinstance(event, OrderbookSnapshot)
    assert event.book.best_bid(Side.YES) == 45
    assert event.book.best_bid(Side.NO) == 50


def test_parse_delta():
    event = parse_message(_frame("orderbook_delta", market_ticker="T", price=44, delta=-3, side="no"))
    assert isinstance(event, OrderbookDelta)
    assert event.side is Side.NO
    assert event.delta == -3


def test_parse_fill_no_side_price():
    event = parse_message(_frame(
        "fill", market_ticker="T", order_id="o1", side="no", count=2, yes_price=58
    ))
    assert isinstance(event, FillEvent)
    assert event.price_cents == 42
    assert event.shares == 2

    event = parse_message(_frame(
        "fill", market_ticker="T", order_id="o1", side="no", count=1, yes_price=58, no_price=43
    ))
    assert event.price_cents == 43


def test_parse_lifecycle():
    event = parse_message(_frame("market_lifecycle_v2", market_ticker="T", event_type="settled", result="yes"))
    assert isinstance(event, MarketLifecycleEvent)
    assert event.status == "settled"
    assert event.result == "yes"


def test_parse_ignores_unknown_and_malformed():
    assert parse_message("not json") is None
    assert parse_message(json.dumps({"type": "subscribed", "msg": {"sid": 1}})) is None
    assert parse_message(_frame("ticker", market_ticker="T")) is None
    assert parse_message(_frame("orderbook_delta", market_ticker="T", side="maybe", price=1, delta=1)) is None
    assert parse_message(_frame("fill", market_ticker="T", side="yes")) is None


@pytest.mark.asyncio
async def test_subscribe_queues_command_and_remembers_ticker():
    auth = MagicMock()
    ws = KalshiWebSocket("wss://test", auth, asyncio.Queue())
    await ws.subscribe("T")
    command = json.loads(ws._commands.get_nowait())
    assert command["cmd"] == "subscribe"
    assert command["params"]["market_tickers"] == ["T"]
    assert "fill" in command["params"]["channels"]

    await ws.unsubscribe("T")
    command = json.loads(ws._commands.get_nowait())
    assert command["cmd"] == "unsubscribe"
    assert command["id"] == 2
    assert ws._subscriptions == {}


class FakeConnection:
    """Yields the given frames, then ends the stream like a closed socket."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def __aiter__(self):
        for frame in self.frames:
            yield frame

    async def send(self, message):
        self.sent.append(json.loads(message))


@pytest.mark.asyncio
async def test_reconnects_resubscribes_and_reports_disconnect(monkeypatch):
    queue = asyncio.Queue()
    ws = KalshiWebSocket("wss://test", MagicMock(), queue, reconnect_delay=0)
    connections = [
        FakeConnection([_frame("orderbook_delta", market_ticker="T", price=44, delta=2, side="yes")]),
        FakeConnection([]),
    ]
    opened = []

    def fake_connect(url, additional_headers=None):
        conn = connections[len(opened)]
        opened.append(conn)
        if len(opened) == len(connections):
            ws.stop()
        return conn

    monkeypatch.setattr("feeds.kalshi_ws.connect", fake_connect)
    await ws.subscribe("T")

    await asyncio.wait_for(ws.start(), timeout=2)

    assert len(opened) == 2
    first = queue.get_nowait()
    assert isinstance(first, OrderbookDelta)
    assert first.ticker == "T"
    assert isinstance(queue.get_nowait(), Disconnected)
    assert isinstance(queue.get_nowait(), Disconnected)
    for conn in connections:
        assert [c["cmd"] for c in conn.sent] == ["subscribe"]
        assert conn.sent[0]["params"]["market_tickers"] == ["T"]
