"""Tests for strategy.signal."""
import pytest
from helpers import make_market, make_price

from shared.schemas import Orderbook, PolicyLimits, Side, TrendAlignment
from strategy.signal import (
    compute_signal_summary,
    ema_adjustment,
    imbalance_adjustment,
    momentum_adjustment,
    rsi_adjustment,
    side_edge,
    trend_adjustment,
)

LIMITS = PolicyLimits()


def test_momentum_adjustment():
    assert momentum_adjustment(0.2) == 8.0
    assert momentum_adjustment(0.1) == 3.0
    assert momentum_adjustment(0.0) == 0.0
    assert momentum_adjustment(-0.1) == -3.0
    assert momentum_adjustment(-0.2) == -8.0


def test_trend_adjustment():
    assert trend_adjustment(TrendAlignment.ALL_UP) == 6.0
    assert trend_adjustment(TrendAlignment.ALL_DOWN) == -6.0
    assert trend_adjustment(TrendAlignment.MIXED) == 0.0


def test_ema_adjustment():
    assert ema_adjustment(0.1) == 3.0
    assert ema_adjustment(-0.1) == -3.0
    assert ema_adjustment(0.01) == 0.0


def test_rsi_adjustment_follows_momentum():
    assert rsi_adjustment(75) == (4.0, "OVERBOUGHT (>70)")
    assert rsi_adjustment(25) == (-4.0, "OVERSOLD (<30)")
    assert rsi_adjustment(50) == (0.0, "NEUTRAL")


def test_imbalance_adjustment():
    assert imbalance_adjustment(3.0) == 3.0
    assert imbalance_adjustment(0.3) == -3.0
    assert imbalance_adjustment(1.0) == 0.0


def test_side_edge_missing_ask_uses_99():
    market = make_market(yes_ask=None)
    edge, ask = side_edge(market, 60.0, Side.YES)
    assert ask == 99
    assert edge == pytest.approx(-39.0)
    edge, ask = side_edge(market, 60.0, Side.NO)
    assert ask == 54
    assert edge == pytest.approx(-14.0)


def test_summary_without_price_uses_orderbook_only():
    market = make_market(yes_ask=40, no_ask=60)
    summary = compute_signal_summary(market, None, LIMITS)
    assert summary.price_available is False
    assert summary.rsi_signal == "UNAVAILABLE"
    assert summary.trend is None
    assert summary.probability_yes == 50.0
    assert summary.best_side is Side.YES
    assert summary.best_edge == pytest.approx(10.0)
    assert summary.recommended_side is Side.YES
    assert summary.kelly_shares == 1
    assert "UNAVAILABLE" in summary.narrative


def test_summary_bullish_price():
    market = make_market(yes_ask=48, no_ask=54)
    price = make_price(pct_change_15m=0.2, trend=TrendAlignment.ALL_UP)
    summary = compute_signal_summary(market, price, LIMITS)
    assert summary.probability_yes == pytest.approx(64.0)
    assert summary.best_side is Side.YES
    assert summary.best_edge == pytest.approx(16.0)
    assert summary.probability_for(Side.NO) == pytest.approx(36.0)


def test_summary_bearish_price_picks_no():
    market = make_market(yes_ask=54, no_ask=48)
    price = make_price(pct_change_15m=-0.2, trend=TrendAlignment.ALL_DOWN)
    summary = compute_signal_summary(market, price, LIMITS)
    assert summary.probability_yes == pytest.approx(36.0)
    assert summary.best_side is Side.NO
    assert summary.best_edge == pytest.approx(16.0)


def test_summary_orderbook_pressure():
    book = Orderbook.from_pairs([[45, 300]], [[50, 10]])
    market = make_market(yes_ask=48, no_ask=54, orderbook=book)
    summary = compute_signal_summary(market, None, LIMITS)
    assert summary.orderbook_imbalance == 5.0
    assert summary.probability_yes == pytest.approx(53.0)


def test_summary_no_asks_recommends_nothing():
    market = make_market(yes_ask=None, no_ask=None)
    summary = compute_signal_summary(market, None, LIMITS)
    assert summary.best_side is Side.YES
    assert summary.best_price_cents == 99
    assert summary.recommended_side is None
    assert summary.kelly_shares == 0
