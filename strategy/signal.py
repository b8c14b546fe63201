"""Signal scoring: probability estimate for YES from price and orderbook indicators."""
from typing import Optional

from shared.schemas import (
    MarketSnapshot,
    PolicyLimits,
    PriceSignal,
    Side,
    SignalSummary,
    TrendAlignment,
)
from strategy.indicators import compute_orderbook_imbalance, ema_gap_pct
from strategy.risk import kelly_shares
from strategy.thresholds import (
    BASE_PROBABILITY,
    EMA_ADJ,
    EMA_GAP_PCT,
    IMBALANCE_ADJ,
    IMBALANCE_HIGH,
    IMBALANCE_LOW,
    MISSING_ASK_CENTS,
    PROBABILITY_CAP,
    PROBABILITY_FLOOR,
    RSI_ADJ,
    RSI_OVERBOUGHT,
    RSI_OVERSOLD,
    STRONG_MOMENTUM_ADJ,
    STRONG_MOMENTUM_PCT,
    TREND_ALIGNMENT_ADJ,
    WEAK_MOMENTUM_ADJ,
    WEAK_MOMENTUM_PCT,
)


def momentum_adjustment(pct_change_15m: float) -> float:
    """Probability points from 15m momentum."""
    if pct_change_15m > STRONG_MOMENTUM_PCT:
        return STRONG_MOMENTUM_ADJ
    if pct_change_15m < -STRONG_MOMENTUM_PCT:
        return -STRONG_MOMENTUM_ADJ
    if pct_change_15m > WEAK_MOMENTUM_PCT:
        return WEAK_MOMENTUM_ADJ
    if pct_change_15m < -WEAK_MOMENTUM_PCT:
        return -WEAK_MOMENTUM_ADJ
    return 0.0


def trend_adjustment(trend: TrendAlignment) -> float:
    if trend is TrendAlignment.ALL_UP:
        return TREND_ALIGNMENT_ADJ
    if trend is TrendAlignment.ALL_DOWN:
        return -TREND_ALIGNMENT_ADJ
    return 0.0


def ema_adjustment(gap_pct: float) -> float:
    if gap_pct > EMA_GAP_PCT:
        return EMA_ADJ
    if gap_pct < -EMA_GAP_PCT:
        return -EMA_ADJ
    return 0.0


def rsi_adjustment(rsi: float) -> tuple[float, str]:
    """Overbought tends to stay up over 15 minutes, oversold to stay down."""
    if rsi > RSI_OVERBOUGHT:
        return RSI_ADJ, "OVERBOUGHT (>70)"
    if rsi < RSI_OVERSOLD:
        return -RSI_ADJ, "OVERSOLD (<30)"
    return 0.0, "NEUTRAL"


def imbalance_adjustment(imbalance: float) -> float:
    if imbalance > IMBALANCE_HIGH:
        return IMBALANCE_ADJ
    if imbalance < IMBALANCE_LOW:
        return -IMBALANCE_ADJ
    return 0.0


def side_edge(market: MarketSnapshot, probability_yes: float, side: Side) -> tuple[float, int]:
    """Edge in points and the ask used, for buying ``side``."""
    ask = market.ask(side)
    if ask is None:
        ask = MISSING_ASK_CENTS
    prob = probability_yes if side is Side.YES else 100.0 - probability_yes
    return prob - ask, ask


def compute_signal_summary(
    market: MarketSnapshot,
    price: Optional[PriceSignal],
    limits: PolicyLimits,
) -> SignalSummary:
    """Estimate P(YES), compare both sides to their asks and size by half-Kelly.

    Without price data only the orderbook term contributes.
    """
    prob_yes = BASE_PROBABILITY
    rsi_signal = "UNAVAILABLE"
    trend: Optional[TrendAlignment] = None
    gap = 0.0

    if price is not None:
        prob_yes += momentum_adjustment(price.pct_change_15m)
        trend = price.trend
        prob_yes += trend_adjustment(trend)
        gap = ema_gap_pct(price)
        prob_yes += ema_adjustment(gap)
        rsi_adj, rsi_signal = rsi_adjustment(price.rsi_9)
        prob_yes += rsi_adj

    imbalance = compute_orderbook_imbalance(market.orderbook)
    prob_yes += imbalance_adjustment(imbalance)
    prob_yes = max(PROBABILITY_FLOOR, min(PROBABILITY_CAP, prob_yes))

    yes_edge, yes_ask = side_edge(market, prob_yes, Side.YES)
    no_edge, no_ask = side_edge(market, prob_yes, Side.NO)
    if yes_edge >= no_edge:
        best_side, best_edge, best_price = Side.YES, yes_edge, yes_ask
    else:
        best_side, best_edge, best_price = Side.NO, no_edge, no_ask
    recommended = best_side if best_edge > 0 else None

    shares = 0
    if recommended is not None and best_edge >= limits.min_edge_pts:
        win_prob = (prob_yes if best_side is Side.YES else 100.0 - prob_yes) / 100.0
        shares = kelly_shares(win_prob, best_price, limits.max_shares)

    trend_label = trend.value if trend else "UNAVAILABLE"
    side_label = recommended.value.upper() if recommended else "NONE"
    rsi_label = f"{price.rsi_9:.1f} ({rsi_signal})" if price is not None else "n/a"
    narrative = (
        f"Trend: {trend_label} | RSI(9): {rsi_label}"
        f" | EMA(9) gap: {gap:+.3f}% | OB imbalance: {imbalance:.2f}"
        f" | Est. prob YES: {prob_yes:.0f}% | Best side: {side_label} edge {best_edge:.1f}pt"
        f" | Kelly: {shares} shares"
    )

    return SignalSummary(
        trend=trend,
        rsi_signal=rsi_signal,
        orderbook_imbalance=imbalance,
        probability_yes=prob_yes,
        recommended_side=recommended,
        best_side=best_side,
        best_edge=best_edge,
        best_price_cents=best_price,
        kelly_shares=shares,
        price_available=price is not None,
        narrative=narrative,
    )
