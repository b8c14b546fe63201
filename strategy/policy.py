"""Decision policy: a pure function of market, price signal and performance.

Re-evaluated independently every cycle. The only state it sees is the
performance history passed in by the caller.
"""
import logging
from typing import Optional

from shared.schemas import (
    Action,
    Decision,
    DecisionSource,
    MarketSnapshot,
    PerformanceState,
    PolicyLimits,
    PriceSignal,
    Side,
    SignalSummary,
    TrendAlignment,
    clamp_edge,
    clamp_probability,
)
from strategy.risk import kelly_shares, min_edge_for_streak
from strategy.signal import compute_signal_summary
from strategy.thresholds import EDGE_TIERS, STREAK_MAX_SHARES

logger = logging.getLogger(__name__)


def max_shares_for_edge(edge: float) -> int:
    """Edge tier table: 8-12 -> 1, 12-20 -> 2, 20+ -> 3, below 8 -> 0."""
    for floor, shares in EDGE_TIERS:
        if edge >= floor:
            return shares
    return 0


def is_unanimous(trend: Optional[TrendAlignment], side: Side) -> bool:
    if side is Side.YES:
        return trend is TrendAlignment.ALL_UP
    return trend is TrendAlignment.ALL_DOWN


def limit_price(
    market: MarketSnapshot,
    side: Side,
    ask: int,
    edge: float,
    limits: PolicyLimits,
) -> int:
    """Pay the ask on a narrow spread, otherwise improve the bid by a cent.

    High-conviction edges cross a wide spread anyway. Never above the ceiling.
    """
    price = ask
    spread = market.spread(side)
    if spread is not None and spread > limits.wide_spread_cents:
        if edge < limits.high_conviction_edge_pts:
            bid = market.bid(side)
            if bid is None:
                bid = market.orderbook.best_bid(side)
            if bid is not None:
                price = min(ask, bid + 1)
    return max(1, min(price, limits.price_ceiling_cents))


def evaluate(
    market: MarketSnapshot,
    price: Optional[PriceSignal],
    performance: PerformanceState,
    limits: Optional[PolicyLimits] = None,
    summary: Optional[SignalSummary] = None,
) -> Decision:
    """Score one market and return BUY or PASS with probability and edge."""
    limits = limits or PolicyLimits()
    summary = summary or compute_signal_summary(market, price, limits)

    side = summary.best_side
    probability = summary.probability_for(side)
    edge = round(summary.best_edge)
    ask = summary.best_price_cents
    streak = performance.current_streak
    losing = streak <= limits.losing_streak
    min_edge = min_edge_for_streak(streak, limits)

    def _pass(why: str) -> Decision:
        return Decision.pass_(probability, edge, f"{why}. {summary.narrative}")

    if edge < min_edge:
        return _pass(f"Edge {edge}pt < {min_edge:.0f}pt minimum (streak={streak})")

    if losing and not is_unanimous(summary.trend, side):
        trend = summary.trend.value if summary.trend else "UNAVAILABLE"
        return _pass(
            f"Losing streak {streak}: {side.value.upper()} needs unanimous trend, got {trend}"
        )

    shares = kelly_shares(probability / 100.0, ask, limits.max_shares)
    shares = min(shares, max_shares_for_edge(edge), limits.max_shares)
    if losing:
        shares = min(shares, STREAK_MAX_SHARES)
    if shares < 1:
        return _pass("Half-Kelly sizes this at zero")

    price_cents = limit_price(market, side, ask, edge, limits)

    return Decision(
        action=Action.BUY,
        side=side,
        shares=shares,
        max_price_cents=price_cents,
        estimated_probability=clamp_probability(probability),
        estimated_edge=clamp_edge(edge),
        reasoning=(
            f"BUY {side.value.upper()} {shares}x @ {price_cents}¢: "
            f"edge {edge}pt vs ask {ask}¢. {summary.narrative}"
        ),
        source=DecisionSource.RULES,
    )
