"""Test helpers shared across test files."""
from datetime import datetime, timezone

from brain.llm_client import _merge_fields
from shared.schemas import (
    LedgerRow,
    MarketSnapshot,
    Orderbook,
    PriceSignal,
    Side,
    TrendAlignment,
)


def mcr(response="", thinking="", model="test-model", usage=None):
    """Build a mock OpenRouter chat return dict with merged field.

    Use instead of raw dicts so mocks match llm_client.chat() format.
    Short name (mock chat response) for compact test code.
    """
    return {
        "response": response,
        "thinking": thinking,
        "merged": _merge_fields(response, thinking),
        "model": model,
        "usage": usage or {},
    }


def make_market(**kwargs) -> MarketSnapshot:
    defaults = dict(
        ticker="KXBTC15M-26OCT181200-00",
        event_ticker="KXBTC15M-26OCT181200",
        title="BTC up in next 15 min?",
        yes_bid=46, yes_ask=48, no_bid=50, no_ask=54,
        minutes_to_expiry=10.0,
        expiration_time="2026-10-18T12:00:00Z",
        orderbook=Orderbook(),
    )
    defaults.update(kwargs)
    return MarketSnapshot(**defaults)


def make_price(**kwargs) -> PriceSignal:
    defaults = dict(
        spot_price=100000.0,
        pct_change_5m=0.0,
        pct_change_15m=0.0,
        pct_change_1h=0.0,
        rsi_9=50.0,
        trend=TrendAlignment.MIXED,
    )
    defaults.update(kwargs)
    return PriceSignal(**defaults)


def make_row(result="win", pnl=50, day=18, hour=10, side=Side.YES, **kwargs) -> LedgerRow:
    defaults = dict(
        timestamp=datetime(2026, 10, day, hour, 0, tzinfo=timezone.utc),
        ticker="KXBTC15M-26OCT181200-00",
        series="KXBTC15M",
        side=side,
        shares=1,
        price_cents=48,
        result=result,
        pnl_cents=pnl,
    )
    defaults.update(kwargs)
    return LedgerRow(**defaults)
