"""Tests for feeds.kalshi_client."""
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from feeds.kalshi_client import (
    KalshiAPIError,
    KalshiClient,
    asset_label,
    parse_market,
    series_to_binance_symbol,
)
from shared.schemas import OrderRequest, Side


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def _client(handler, auth=None, sleep=None):
    return KalshiClient(
        "https://api.test",
        auth=auth,
        transport=httpx.MockTransport(handler),
        sleep=sleep or AsyncMock(),
    )


def test_series_symbol_mapping():
    assert series_to_binance_symbol("KXBTC15M") == "BTCUSDT"
    assert series_to_binance_symbol("kxeth15m") == "ETHUSDT"
    assert series_to_binance_symbol("KXSOL15M") == "SOLUSDT"
    assert asset_label("KXXRP15M") == "XRP"


def test_parse_market_dollar_fields():
    now = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
    market = parse_market(
        {
            "ticker": "KXBTC15M-A",
            "yes_bid_dollars": "0.4500",
            "yes_ask_dollars": "0.4700",
            "no_bid": 53,
            "no_ask": 55,
            "expected_expiration_time": "2026-10-18T12:10:00Z",
            "status": "active",
        },
        now,
    )
    assert market.yes_bid == 45
    assert market.yes_ask == 47
    assert market.no_ask == 55
    assert market.minutes_to_expiry == pytest.approx(10.0)
    assert parse_market({"ticker": "X"}, now) is None


@pytest.mark.asyncio
async def test_active_market_picks_nearest_expiry():
    now = datetime.now(timezone.utc)

    def handler(request):
        assert request.url.path == "/trade-api/v2/markets"
        assert request.url.params["series_ticker"] == "KXBTC15M"
        return httpx.Response(200, json={"markets": [
            {"ticker": "LATER", "expiration_time": _iso(now + timedelta(minutes=25))},
            {"ticker": "NEXT", "expiration_time": _iso(now + timedelta(minutes=10))},
            {"ticker": "EXPIRED", "expiration_time": _iso(now - timedelta(minutes=1))},
        ]})

    client = _client(handler)
    market = await client.active_market("KXBTC15M")
    assert market.ticker == "NEXT"
    await client.close()


@pytest.mark.asyncio
async def test_orderbook_sorted_best_first():
    def handler(request):
        return httpx.Response(200, json={"orderbook": {"yes": [[40, 5], [44, 2]], "no": None}})

    client = _client(handler)
    book = await client.orderbook("KXBTC15M-A")
    assert book.best_bid(Side.YES) == 44
    assert book.yes[0].price_cents == 44
    assert book.no == []
    await client.close()


@pytest.mark.asyncio
async def test_rate_limit_retried_once():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, text="slow down")
        return httpx.Response(200, json={"balance": 1234})

    sleep = AsyncMock()
    client = _client(handler, sleep=sleep)
    assert await client.balance() == 1234
    assert len(calls) == 2
    sleep.assert_awaited_once_with(2.0)
    await client.close()


@pytest.mark.asyncio
async def test_error_raises_kalshi_api_error():
    def handler(request):
        return httpx.Response(429, text="slow down")

    client = _client(handler)
    with pytest.raises(KalshiAPIError) as exc:
        await client.balance()
    assert exc.value.status_code == 429
    await client.close()


@pytest.mark.asyncio
async def test_place_order_uses_side_price_field():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"order": {"order_id": "ord-1", "status": "resting"}})

    client = _client(handler)
    result = await client.place_order(
        OrderRequest(ticker="KXBTC15M-A", side=Side.NO, shares=2, price_cents=41)
    )
    assert result.order_id == "ord-1"
    assert result.is_paper is False
    body = bodies[0]
    assert body["action"] == "buy"
    assert body["side"] == "no"
    assert body["count"] == 2
    assert body["no_price"] == 41
    assert "yes_price" not in body
    assert body["client_order_id"]
    await client.close()


@pytest.mark.asyncio
async def test_positions_signed_count():
    def handler(request):
        return httpx.Response(200, json={"market_positions": [
            {"ticker": "A", "position": 3},
            {"ticker": "B", "position": -2},
            {"ticker": "C", "position": 0},
        ]})

    client = _client(handler)
    positions = await client.positions()
    assert [(p.ticker, p.side, p.count) for p in positions] == [
        ("A", Side.YES, 3),
        ("B", Side.NO, 2),
    ]
    await client.close()


@pytest.mark.asyncio
async def test_settlements_revenue_decides_result():
    def handler(request):
        return httpx.Response(200, json={"settlements": [
            {"ticker": "A", "market_result": "yes", "revenue": 200},
            {"ticker": "A", "market_result": "no", "revenue": 0},
        ]})

    client = _client(handler)
    won, lost = await client.settlements("A")
    assert won.result == "win"
    assert won.revenue_cents == 200
    assert lost.result == "loss"
    await client.close()


@pytest.mark.asyncio
async def test_signed_requests_carry_auth_headers():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json={"balance": 1})

    auth = MagicMock()
    auth.headers = MagicMock(return_value={"KALSHI-ACCESS-KEY": "k"})
    client = _client(handler, auth=auth)
    await client.balance()
    auth.headers.assert_called_once_with("GET", "/trade-api/v2/portfolio/balance")
    assert seen["kalshi-access-key"] == "k"
    await client.close()
