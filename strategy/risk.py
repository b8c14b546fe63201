"""Risk vetoes, edge validation and half-Kelly sizing."""
import math
from typing import Optional

from shared.schemas import PerformanceState, PolicyLimits
from strategy.thresholds import KELLY_SHARE_SCALE


def check(
    performance: PerformanceState,
    balance_cents: int,
    limits: PolicyLimits,
) -> Optional[str]:
    """Return a veto reason if the cycle must not trade, else None."""
    if balance_cents < limits.min_balance_cents:
        return f"Balance {balance_cents}¢ < {limits.min_balance_cents}¢ minimum"
    if performance.today_pnl_cents <= -limits.max_daily_loss_cents:
        return f"Daily loss: {performance.today_pnl_cents}¢"
    if performance.current_streak <= -limits.max_consecutive_losses:
        return f"{abs(performance.current_streak)}× consecutive losses"
    return None


def kelly_fraction(win_prob: float, price_cents: float) -> float:
    """Full Kelly fraction for a binary contract bought at ``price_cents``."""
    if win_prob <= 0.0 or win_prob >= 1.0 or price_cents <= 0 or price_cents >= 100:
        return 0.0
    b = (100.0 - price_cents) / price_cents  # payout ratio
    return (win_prob * b - (1.0 - win_prob)) / b


def kelly_shares(win_prob: float, price_cents: float, max_shares: int = 3) -> int:
    """Half-Kelly position size in shares (1..max_shares), or 0 for no bet."""
    f = kelly_fraction(win_prob, price_cents)
    if f <= 0.0:
        return 0
    shares = math.ceil(f * 0.5 * KELLY_SHARE_SCALE)
    return max(1, min(shares, min(max_shares, 3)))


def min_edge_for_streak(current_streak: int, limits: PolicyLimits) -> float:
    if current_streak <= limits.losing_streak:
        return limits.streak_min_edge_pts
    return limits.min_edge_pts


def validate_edge(
    estimated_probability: Optional[float],
    estimated_edge: Optional[float],
    price_cents: int,
    current_streak: int,
    limits: PolicyLimits,
) -> Optional[str]:
    """Veto a BUY without a usable probability, enough edge, or price discipline."""
    if estimated_probability is None:
        return "No estimated_probability provided, blocking trade"
    if not 1 <= estimated_probability <= 99:
        return f"Probability {estimated_probability:.0f} out of valid range [1,99]"

    edge = estimated_edge
    if edge is None:
        edge = estimated_probability - price_cents

    min_edge = min_edge_for_streak(current_streak, limits)
    if edge < min_edge:
        return (
            f"Edge {edge:.1f}pt < {min_edge:.0f}pt minimum "
            f"(streak={current_streak}, prob={estimated_probability:.0f}, price={price_cents}¢)"
        )

    if price_cents > limits.price_ceiling_cents:
        return f"Price {price_cents}¢ > {limits.price_ceiling_cents}¢ max"

    return None
