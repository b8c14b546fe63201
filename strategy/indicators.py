"""Technical indicators over Binance candles and Kalshi orderbook depth."""
import math
from typing import Optional, Sequence

from shared.schemas import (
    Candle,
    MomentumDirection,
    Orderbook,
    OrderbookLevel,
    PriceSignal,
    TrendAlignment,
)
from strategy.thresholds import (
    EMA_PERIOD,
    ORDERBOOK_DEPTH,
    RSI_PERIOD,
    STRONG_MOMENTUM_PCT,
    TREND_THRESHOLD_PCT,
)


def pct_change(current: float, reference: float) -> float:
    if reference == 0:
        return 0.0
    return ((current - reference) / reference) * 100.0


def compute_rsi(candles: Sequence[Candle], period: int = RSI_PERIOD) -> float:
    """Simple-average RSI over the last ``period`` close-to-close changes.

    Returns 50 (neutral) when there are not enough candles.
    """
    if len(candles) < period + 1:
        return 50.0

    window = candles[-(period + 1):]
    gains = 0.0
    losses = 0.0
    for prev, cur in zip(window, window[1:]):
        change = cur.close - prev.close
        if change > 0:
            gains += change
        else:
            losses += abs(change)

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def compute_ema(candles: Sequence[Candle], period: int = EMA_PERIOD) -> float:
    """EMA of closes, seeded with the SMA of the first ``period`` candles."""
    if not candles:
        return 0.0
    if len(candles) <= period:
        return sum(c.close for c in candles) / len(candles)

    multiplier = 2.0 / (period + 1.0)
    ema = sum(c.close for c in candles[:period]) / period
    for c in candles[period:]:
        ema = (c.close - ema) * multiplier + ema
    return ema


def compute_volatility(candles: Sequence[Candle]) -> float:
    """Population std-dev of 1m close-to-close returns, in percent."""
    returns = [
        pct_change(cur.close, prev.close)
        for prev, cur in zip(candles, candles[1:])
    ]
    if len(returns) < 2:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance)


def compute_orderbook_imbalance(orderbook: Orderbook, depth: int = ORDERBOOK_DEPTH) -> float:
    """Distance-weighted yes/no bid volume ratio.

    > 1.0 means yes-side buying pressure, < 1.0 means no-side pressure.
    """
    def weighted(levels: list[OrderbookLevel]) -> float:
        return sum(
            lvl.quantity * (1.0 / (i + 1))
            for i, lvl in enumerate(levels[:depth])
        )

    bid_vol = weighted(orderbook.yes)
    ask_vol = weighted(orderbook.no)
    if ask_vol == 0:
        return 5.0 if bid_vol > 0 else 1.0
    return max(0.2, min(5.0, bid_vol / ask_vol))


def compute_trend_alignment(pct_5m: float, pct_15m: float, pct_1h: float) -> TrendAlignment:
    """Check whether the 5m, 15m and 1h moves all point the same way."""
    changes = (pct_5m, pct_15m, pct_1h)
    if all(c > TREND_THRESHOLD_PCT for c in changes):
        return TrendAlignment.ALL_UP
    if all(c < -TREND_THRESHOLD_PCT for c in changes):
        return TrendAlignment.ALL_DOWN
    if all(abs(c) <= TREND_THRESHOLD_PCT for c in changes):
        return TrendAlignment.ALL_FLAT
    return TrendAlignment.MIXED


def _describe_gap(diff_pct: float, label: str) -> str:
    if abs(diff_pct) < 0.01:
        return f"at {label}"
    if diff_pct > 0:
        return f"above +{diff_pct:.3f}%"
    return f"below {diff_pct:.3f}%"


def compute(
    candles_1m: Sequence[Candle],
    candles_5m: Sequence[Candle],
    spot: float,
) -> PriceSignal:
    """Build the full indicator set from 15x1m and 12x5m candles."""
    pct_change_15m = pct_change(spot, candles_1m[0].open) if candles_1m else 0.0
    pct_change_1h = pct_change(spot, candles_5m[0].open) if candles_5m else 0.0
    pct_change_5m = pct_change(spot, candles_5m[-1].open) if candles_5m else 0.0

    if pct_change_15m > STRONG_MOMENTUM_PCT:
        momentum = MomentumDirection.UP
    elif pct_change_15m < -STRONG_MOMENTUM_PCT:
        momentum = MomentumDirection.DOWN
    else:
        momentum = MomentumDirection.FLAT

    sma_15m = sum(c.close for c in candles_1m) / len(candles_1m) if candles_1m else spot
    ema_9 = compute_ema(candles_1m, EMA_PERIOD)

    return PriceSignal(
        spot_price=spot,
        pct_change_5m=pct_change_5m,
        pct_change_15m=pct_change_15m,
        pct_change_1h=pct_change_1h,
        momentum=momentum,
        sma_15m=sma_15m,
        price_vs_sma=_describe_gap(pct_change(spot, sma_15m), "SMA"),
        ema_9=ema_9,
        price_vs_ema=_describe_gap(pct_change(spot, ema_9), "EMA"),
        rsi_9=compute_rsi(candles_1m, RSI_PERIOD),
        volatility_1m=compute_volatility(candles_1m),
        trend=compute_trend_alignment(pct_change_5m, pct_change_15m, pct_change_1h),
        last_3_candles=list(candles_1m[-3:]),
    )


def ema_gap_pct(signal: Optional[PriceSignal]) -> float:
    if signal is None or signal.ema_9 <= 0:
        return 0.0
    return pct_change(signal.spot_price, signal.ema_9)
