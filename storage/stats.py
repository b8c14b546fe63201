"""Performance statistics derived from the ledger."""
from datetime import datetime, timezone
from typing import Optional, Sequence

from shared.schemas import LedgerRow, PerformanceState, utcnow
from storage.models import EXIT_RESULT_PREFIX, is_closed_result

RECENT_TRADES = 20


def is_win(row: LedgerRow) -> bool:
    if row.result.startswith(EXIT_RESULT_PREFIX):
        return row.pnl_cents > 0
    return row.result == "win"


def current_streak(closed: Sequence[LedgerRow]) -> int:
    """Signed length of the newest run: +N wins in a row, -N losses in a row."""
    streak = 0
    for row in reversed(closed):
        won = is_win(row)
        if streak == 0:
            streak = 1 if won else -1
        elif won and streak > 0:
            streak += 1
        elif not won and streak < 0:
            streak -= 1
        else:
            break
    return streak


def max_drawdown(closed: Sequence[LedgerRow]) -> int:
    """Largest peak-to-trough fall of cumulative P&L, as a positive number of cents."""
    peak = 0
    running = 0
    worst = 0
    for row in closed:
        running += row.pnl_cents
        peak = max(peak, running)
        worst = max(worst, peak - running)
    return worst


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def compute_stats(
    rows: Sequence[LedgerRow],
    now: Optional[datetime] = None,
    recent: int = RECENT_TRADES,
) -> PerformanceState:
    """Aggregate ledger rows (oldest first) into the state the policy reads."""
    now = _as_utc(now or utcnow())
    closed = [r for r in rows if is_closed_result(r.result)]
    wins = [r for r in closed if is_win(r)]
    losses = [r for r in closed if not is_win(r)]

    total_pnl = sum(r.pnl_cents for r in rows)
    today_pnl = sum(
        r.pnl_cents for r in rows if _as_utc(r.timestamp).date() == now.date()
    )

    return PerformanceState(
        total_trades=len(closed),
        wins=len(wins),
        losses=len(losses),
        win_rate=len(wins) / len(closed) if closed else 0.0,
        total_pnl_cents=total_pnl,
        today_pnl_cents=today_pnl,
        current_streak=current_streak(closed),
        max_drawdown_cents=max_drawdown(closed),
        avg_win_cents=sum(r.pnl_cents for r in wins) / len(wins) if wins else 0.0,
        avg_loss_cents=sum(r.pnl_cents for r in losses) / len(losses) if losses else 0.0,
        recent_trades=list(rows[-recent:]) if recent > 0 else [],
    )
